"""Retry utilities with exponential backoff for identity-provider calls."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0  # Base delay in seconds
    max_delay: float = 10.0  # Maximum delay in seconds
    exponential_base: float = 2.0  # Exponential backoff multiplier
    jitter: bool = True  # Add random jitter to delays
    retryable_exceptions: tuple = (
        httpx.TimeoutException,
        httpx.ConnectError,
        httpx.NetworkError,
        ConnectionError,
        TimeoutError,
    )
    # Server-side failures only. A 4xx is a definitive answer and is never retried.
    retryable_status_codes: tuple = (500, 502, 503, 504)


def calculate_backoff_delay(
    attempt: int,
    config: RetryConfig,
) -> float:
    """Calculate delay for exponential backoff with optional jitter."""
    delay = config.base_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        # Add random jitter (0.5 to 1.5 times the delay)
        delay = delay * (0.5 + random.random())

    return delay


def is_retryable(exc: Exception, config: RetryConfig) -> bool:
    """Decide whether a failure is transient under the given config."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in config.retryable_status_codes
    return isinstance(exc, config.retryable_exceptions)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    **kwargs,
) -> T:
    """Execute an async function with retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        config: Retry configuration
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        The last exception if all retries fail, or the first
        non-retryable exception immediately
    """
    config = config or RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e, config) or attempt >= config.max_retries:
                logger.warning(f"Giving up after {attempt + 1} attempt(s): {e!r}")
                raise

            delay = calculate_backoff_delay(attempt, config)
            logger.info(
                f"Retry attempt {attempt + 1}/{config.max_retries} after {delay:.2f}s delay: {e!r}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")
