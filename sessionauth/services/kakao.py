"""Kakao identity-provider client.

Covers the four provider calls the login flow needs: building the
authorize URL, exchanging the authorization code, fetching the profile and
(best-effort) provider-side logout. Every network call is bounded by a
timeout and retried with backoff on transient failures only; a 4xx from
Kakao is a final answer.
"""

from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from sessionauth.core import settings
from sessionauth.core.config import Settings
from sessionauth.core.logging import get_logger
from sessionauth.core.retry import RetryConfig, retry_async
from sessionauth.services.errors import (
    ProfileFetchFailedError,
    ProviderUnavailableError,
    TokenExchangeFailedError,
)

logger = get_logger("kakao")

KAKAO_PROVIDER = "kakao"


class KakaoProfile(BaseModel):
    """Validated subset of the Kakao ``/v2/user/me`` response."""

    external_id: str
    email: str | None = None
    nickname: str | None = None

    @classmethod
    def from_user_info(cls, data: Any) -> "KakaoProfile":
        """Validate the raw profile payload.

        Raises:
            ProfileFetchFailedError: payload is not an object or the numeric
                ``id`` is missing
        """
        if not isinstance(data, dict):
            raise ProfileFetchFailedError("Kakao profile response is not an object")

        raw_id = data.get("id")
        if isinstance(raw_id, bool):
            raw_id = None
        # ASCII only: str.isdigit also accepts superscripts and non-Latin digits
        if isinstance(raw_id, str) and raw_id.isascii() and raw_id.isdigit():
            raw_id = int(raw_id)
        if not isinstance(raw_id, int) or raw_id < 0:
            raise ProfileFetchFailedError("Kakao user id is missing or invalid")

        account = data.get("kakao_account")
        if not isinstance(account, dict):
            account = {}
        email = account.get("email")

        return cls(
            external_id=str(raw_id),
            email=email if isinstance(email, str) and email else None,
            nickname=_extract_nickname(account, data.get("properties")),
        )


def _extract_nickname(account: dict, properties: Any) -> str | None:
    profile = account.get("profile")
    if isinstance(profile, dict) and isinstance(profile.get("nickname"), str):
        return profile["nickname"]
    if isinstance(account.get("nickname"), str):
        return account["nickname"]
    if isinstance(properties, dict) and isinstance(properties.get("nickname"), str):
        return properties["nickname"]
    return None


def _provider_error_detail(response: httpx.Response) -> str:
    """Best-effort error description from a provider error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("msg") or body.get("error") or body)
    return str(body)[:200]


class KakaoClient:
    """Async client for Kakao OAuth and user APIs."""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.config = config or settings
        self._transport = transport
        self.retry_config = retry_config or RetryConfig(
            max_retries=self.config.provider_max_retries,
            base_delay=self.config.provider_retry_base_delay,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.provider_timeout_seconds,
            transport=self._transport,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request with retry; raises httpx errors for the caller to map."""

        async def do_request() -> httpx.Response:
            async with self._get_http_client() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response

        return await retry_async(do_request, config=self.retry_config)

    def build_authorize_url(self, redirect_uri: str, state: str, code_challenge: str) -> str:
        """Compose the Kakao authorize URL for an S256 PKCE login."""
        params = {
            "client_id": self.config.kakao_client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.config.kakao_auth_base_url.rstrip('/')}/oauth/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str, code_verifier: str, redirect_uri: str) -> str:
        """Exchange an authorization code for a Kakao access token.

        Raises:
            TokenExchangeFailedError: Kakao rejected the code (4xx) or sent no token
            ProviderUnavailableError: timeouts or 5xx after retries
        """
        token_data = {
            "grant_type": "authorization_code",
            "client_id": self.config.kakao_client_id,
            "redirect_uri": redirect_uri,
            "code": code,
            "code_verifier": code_verifier,
        }
        if self.config.kakao_client_secret:
            token_data["client_secret"] = self.config.kakao_client_secret

        logger.info(f"Exchanging authorization code with redirect URI: {redirect_uri}")
        try:
            response = await self._request(
                "POST",
                f"{self.config.kakao_auth_base_url.rstrip('/')}/oauth/token",
                data=token_data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _provider_error_detail(e.response)
            if status < 500:
                logger.warning(f"Kakao token exchange rejected ({status}): {detail}")
                raise TokenExchangeFailedError(f"Token exchange rejected: {detail}") from e
            logger.error(f"Kakao token endpoint failing ({status}): {detail}")
            raise ProviderUnavailableError() from e
        except httpx.HTTPError as e:
            logger.error(f"Kakao token endpoint unreachable: {e!r}")
            raise ProviderUnavailableError() from e

        try:
            token_response = response.json()
        except ValueError as e:
            raise TokenExchangeFailedError("Invalid JSON from token endpoint") from e

        access_token = token_response.get("access_token") if isinstance(token_response, dict) else None
        if not access_token:
            logger.error("Kakao token response has no access token")
            raise TokenExchangeFailedError("No access token in provider response")
        return access_token

    async def fetch_profile(self, access_token: str) -> KakaoProfile:
        """Fetch and validate the profile of the Kakao account.

        Raises:
            ProfileFetchFailedError: Kakao rejected the token or the profile is invalid
            ProviderUnavailableError: timeouts or 5xx after retries
        """
        try:
            response = await self._request(
                "GET",
                f"{self.config.kakao_api_base_url.rstrip('/')}/v2/user/me",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/x-www-form-urlencoded;charset=utf-8",
                },
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _provider_error_detail(e.response)
            if status < 500:
                logger.warning(f"Kakao profile request rejected ({status}): {detail}")
                raise ProfileFetchFailedError(f"Profile request rejected: {detail}") from e
            logger.error(f"Kakao profile endpoint failing ({status}): {detail}")
            raise ProviderUnavailableError() from e
        except httpx.HTTPError as e:
            logger.error(f"Kakao profile endpoint unreachable: {e!r}")
            raise ProviderUnavailableError() from e

        try:
            user_info = response.json()
        except ValueError as e:
            raise ProfileFetchFailedError("Invalid JSON from profile endpoint") from e
        return KakaoProfile.from_user_info(user_info)

    async def logout_user(self, provider_id: str) -> bool:
        """Log the account out of Kakao using the admin key.

        Best-effort: failures are logged and reported as False, never raised.
        """
        if not self.config.kakao_admin_key:
            logger.warning(f"Kakao admin key not configured, skipping Kakao logout for {provider_id}")
            return False

        try:
            await self._request(
                "POST",
                f"{self.config.kakao_api_base_url.rstrip('/')}/v1/user/logout",
                data={"target_id_type": "user_id", "target_id": provider_id},
                headers={"Authorization": f"KakaoAK {self.config.kakao_admin_key}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Failed to log out Kakao user {provider_id}: {e!r}")
            return False

        logger.info(f"Logged out Kakao user {provider_id}")
        return True


@lru_cache
def get_kakao_client() -> KakaoClient:
    """Process-wide Kakao client built from settings."""
    return KakaoClient()
