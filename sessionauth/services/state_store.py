"""One-time OAuth state binding a login attempt to its PKCE challenge.

A state resolves at most once: ``consume`` reads and deletes in a single
atomic step, so two concurrent callbacks carrying the same state cannot
both proceed.
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis

from sessionauth.core import settings
from sessionauth.core.logging import get_logger
from sessionauth.services.errors import InvalidStateError

logger = get_logger("state_store")

STATE_KEY_PREFIX = "oauth:state:"

# OAuth state expires after 10 minutes
DEFAULT_STATE_TTL_SECONDS = 600


def generate_state() -> str:
    """Generate an unguessable state identifier (256 bits)."""
    return secrets.token_urlsafe(32)


class StateStore(ABC):
    """Ephemeral, single-use state → code challenge mapping."""

    def __init__(self, ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def create(self, code_challenge: str) -> str:
        """Store a fresh state bound to ``code_challenge`` and return it."""

    @abstractmethod
    async def consume(self, state: str) -> str:
        """Atomically fetch and delete the challenge for ``state``.

        Raises:
            InvalidStateError: state is unknown, expired or already consumed
        """


class InMemoryStateStore(StateStore):
    """Process-local store for single-instance deployments and tests."""

    def __init__(self, ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS):
        super().__init__(ttl_seconds)
        self._entries: dict[str, tuple[str, float]] = {}
        # threading.Lock so the store is safe from sync worker threads too
        self._lock = threading.Lock()

    async def create(self, code_challenge: str) -> str:
        state = generate_state()
        expires_at = time.monotonic() + self.ttl_seconds
        with self._lock:
            self._purge_expired_locked()
            self._entries[state] = (code_challenge, expires_at)
        logger.debug("OAuth state created")
        return state

    async def consume(self, state: str) -> str:
        with self._lock:
            entry = self._entries.pop(state, None)
        if entry is None:
            logger.warning("OAuth state not found or already consumed")
            raise InvalidStateError()
        code_challenge, expires_at = entry
        if time.monotonic() >= expires_at:
            logger.warning("OAuth state expired")
            raise InvalidStateError("OAuth state has expired. Please restart login.")
        return code_challenge

    def _purge_expired_locked(self) -> None:
        now = time.monotonic()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisStateStore(StateStore):
    """Shared store for multi-instance deployments.

    Expiry is delegated to Redis (``SET ... EX``) and consumption uses
    ``GETDEL`` so the read and delete are one server-side operation.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
    ):
        super().__init__(ttl_seconds)
        self.client = client

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        socket_timeout: float = 5.0,
    ) -> "RedisStateStore":
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, ttl_seconds)

    async def create(self, code_challenge: str) -> str:
        state = generate_state()
        await self.client.set(f"{STATE_KEY_PREFIX}{state}", code_challenge, ex=self.ttl_seconds)
        logger.debug("OAuth state stored in redis")
        return state

    async def consume(self, state: str) -> str:
        code_challenge = await self.client.getdel(f"{STATE_KEY_PREFIX}{state}")
        if code_challenge is None:
            logger.warning("OAuth state not found in redis")
            raise InvalidStateError()
        if isinstance(code_challenge, bytes):
            code_challenge = code_challenge.decode("utf-8")
        return code_challenge

    async def close(self) -> None:
        await self.client.aclose()


_store: Optional[StateStore] = None
_store_lock = threading.Lock()


def get_state_store() -> StateStore:
    """Return the process-wide state store selected by REDIS_URL (thread-safe)."""
    global _store
    if _store is None:
        with _store_lock:
            # Double-check locking pattern
            if _store is None:
                if settings.redis_url:
                    _store = RedisStateStore.from_url(
                        settings.redis_url, ttl_seconds=settings.oauth_state_ttl_seconds
                    )
                    logger.info("Using redis-backed OAuth state store")
                else:
                    _store = InMemoryStateStore(ttl_seconds=settings.oauth_state_ttl_seconds)
                    logger.info("Using in-memory OAuth state store")
    return _store


async def close_state_store() -> None:
    """Release the process-wide store (called on shutdown)."""
    global _store
    if isinstance(_store, RedisStateStore):
        await _store.close()
    _store = None
