"""Kakao login flow: authorize URL, callback completion, refresh and logout."""

import base64
import hashlib
import hmac
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from sessionauth.core import settings
from sessionauth.services.errors import (
    InvalidCodeVerifierError,
    InvalidRedirectUriError,
)
from sessionauth.services.kakao import KAKAO_PROVIDER, KakaoClient, get_kakao_client
from sessionauth.services.state_store import StateStore, get_state_store
from sessionauth.services.token_lifecycle import SessionTokens, TokenLifecycleManager
from sessionauth.services.users import UserService

logger = logging.getLogger(__name__)


def compute_code_challenge(code_verifier: str) -> str:
    """S256 PKCE challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def verify_pkce(code_verifier: str, code_challenge: str) -> bool:
    """Compare the recomputed challenge with the stored one in constant time."""
    return hmac.compare_digest(
        compute_code_challenge(code_verifier).encode("ascii"),
        code_challenge.encode("utf-8"),
    )


class LoginOrchestrator:
    """Service for the OAuth 2.0 authorization code + PKCE login."""

    def __init__(
        self,
        session: AsyncSession,
        state_store: StateStore | None = None,
        provider: KakaoClient | None = None,
        tokens: TokenLifecycleManager | None = None,
        allowed_redirect_uris: list[str] | None = None,
    ):
        self.session = session
        self.state_store = state_store if state_store is not None else get_state_store()
        self.provider = provider if provider is not None else get_kakao_client()
        self.tokens = tokens if tokens is not None else TokenLifecycleManager(session)
        self.users = UserService(session)
        self.allowed_redirect_uris = (
            allowed_redirect_uris
            if allowed_redirect_uris is not None
            else settings.allowed_redirect_uris_list
        )

    async def build_login_url(self, redirect_uri: str, code_challenge: str) -> tuple[str, str]:
        """Start a login: returns (authorize_url, state).

        Raises:
            InvalidRedirectUriError: redirect URI not in the allow-list; no
                state is created in that case
        """
        if redirect_uri not in self.allowed_redirect_uris:
            logger.warning(f"Rejected login URL request for redirect URI: {redirect_uri}")
            raise InvalidRedirectUriError()

        state = await self.state_store.create(code_challenge)
        url = self.provider.build_authorize_url(redirect_uri, state, code_challenge)
        logger.info(f"Generated Kakao login URL for redirect URI: {redirect_uri}")
        return url, state

    async def complete_login(
        self,
        code: str,
        state: str,
        code_verifier: str,
        redirect_uri: str,
        response: Response,
    ) -> SessionTokens:
        """Finish a login from the provider callback.

        The state is consumed before anything else, so a replayed callback
        fails even when the first attempt failed later on.

        Raises:
            InvalidStateError: state unknown, expired or already used
            InvalidCodeVerifierError: verifier does not match the challenge
            TokenExchangeFailedError, ProfileFetchFailedError,
            ProviderUnavailableError: provider-side failures
        """
        stored_challenge = await self.state_store.consume(state)

        if not verify_pkce(code_verifier, stored_challenge):
            logger.warning("PKCE verification failed")
            raise InvalidCodeVerifierError()

        provider_token = await self.provider.exchange_code(code, code_verifier, redirect_uri)
        profile = await self.provider.fetch_profile(provider_token)

        user = await self.users.upsert_provider_user(KAKAO_PROVIDER, profile)
        tokens = self.tokens.issue(user, response)
        logger.info(f"Kakao login completed for user {user.id}")
        return tokens

    async def refresh(self, refresh_token: str | None, response: Response) -> SessionTokens:
        """Rotate a refresh token."""
        return await self.tokens.refresh(refresh_token, response)

    async def logout(self, refresh_token: str | None, response: Response) -> None:
        """Revoke the refresh token, then log out of Kakao best-effort."""
        user_id = await self.tokens.revoke(refresh_token, response)
        if user_id is None:
            return

        user = await self.users.get_by_id(user_id)
        if user is not None and user.provider.lower() == KAKAO_PROVIDER and user.provider_id:
            await self.provider.logout_user(user.provider_id)
