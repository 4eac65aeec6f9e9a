"""Issuance, rotation and revocation of session tokens.

Refresh tokens are single use. Each one moves through::

    issued --refresh--> blacklisted
    issued --revoke---> blacklisted

and a blacklisted token is rejected by both operations from then on.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from sessionauth.core import settings
from sessionauth.models.user import User
from sessionauth.services.blacklist import BlacklistStore
from sessionauth.services.cookies import TokenTransport
from sessionauth.services.errors import (
    BlacklistedTokenError,
    InvalidTokenError,
    TokenError,
    UserNotFoundError,
)
from sessionauth.services.token_codec import TokenClaims, TokenCodec, TokenKind, get_token_codec
from sessionauth.services.users import UserService

logger = logging.getLogger(__name__)


@dataclass
class SessionTokens:
    """A freshly issued access/refresh pair and the user it belongs to."""

    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_at: datetime
    user: User


class TokenLifecycleManager:
    """Orchestrates the codec, the blacklist and the refresh-token transport."""

    def __init__(
        self,
        session: AsyncSession,
        codec: TokenCodec | None = None,
        transport: TokenTransport | None = None,
        access_ttl: timedelta | None = None,
        refresh_ttl: timedelta | None = None,
    ):
        self.session = session
        self.codec = codec or get_token_codec()
        self.transport = transport or TokenTransport()
        self.blacklist = BlacklistStore(session)
        self.users = UserService(session)
        self.access_ttl = access_ttl or timedelta(minutes=settings.jwt_access_token_expire_minutes)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.jwt_refresh_token_expire_days)

    def issue(self, user: User, response: Response) -> SessionTokens:
        """Sign a new access/refresh pair and hand the refresh token to the transport."""
        subject = str(user.id)
        claim_email = user.email or user.name
        access_token = self.codec.sign(subject, TokenKind.ACCESS, self.access_ttl, email=claim_email)
        refresh_token = self.codec.sign(subject, TokenKind.REFRESH, self.refresh_ttl, email=claim_email)

        # Cookie lifetime follows the token's own expiry, not a fixed constant
        refresh_expires_at = self.codec.expiry_of(refresh_token)
        max_age = int((refresh_expires_at - datetime.now(UTC)).total_seconds())
        self.transport.set_refresh_token(response, refresh_token, max_age)

        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_at=refresh_expires_at,
            user=user,
        )

    async def refresh(self, refresh_token: str | None, response: Response) -> SessionTokens:
        """Rotate ``refresh_token`` into a new pair.

        Raises:
            InvalidTokenError: empty, malformed, tampered or not a refresh token
            BlacklistedTokenError: token was already rotated or revoked
            TokenExpiredError: token is authentic but expired
            UserNotFoundError: subject no longer exists
        """
        if not refresh_token:
            logger.warning("Refresh requested without a token")
            raise InvalidTokenError("Refresh token is missing")

        # Blacklist first so a replayed token reports consistently even once expired
        if await self.blacklist.is_blacklisted(refresh_token):
            logger.warning("Replay of a blacklisted refresh token")
            raise BlacklistedTokenError()

        if self.codec.kind_of(refresh_token) is not TokenKind.REFRESH:
            logger.warning("Non-refresh token presented for refresh")
            raise InvalidTokenError("Not a refresh token")
        claims = self.codec.verify(refresh_token, expected_kind=TokenKind.REFRESH)
        user_id = _subject_as_uuid(claims)

        user = await self.users.get_by_id(user_id)
        if user is None:
            logger.warning(f"Refresh token subject {user_id} does not exist")
            raise UserNotFoundError()

        # Consume the old token before minting the new pair; losing the race
        # to a concurrent refresh of the same token counts as a replay.
        if not await self.blacklist.add(refresh_token, user_id, claims.expires_at):
            logger.warning(f"Concurrent reuse of refresh token for user {user_id}")
            raise BlacklistedTokenError()

        tokens = self.issue(user, response)
        logger.info(f"Rotated refresh token for user {user_id}")
        return tokens

    async def revoke(self, refresh_token: str | None, response: Response) -> uuid.UUID | None:
        """Log out: clear the cookie and blacklist the token if it is live.

        Never raises for bad input. Returns the user id only when a valid,
        previously unused refresh token was revoked.
        """
        self.transport.clear_refresh_token(response)

        if not refresh_token:
            logger.info("Logout without a refresh token")
            return None

        if await self.blacklist.is_blacklisted(refresh_token):
            logger.info("Logout with an already blacklisted refresh token")
            return None

        try:
            claims = self.codec.verify(refresh_token, expected_kind=TokenKind.REFRESH)
            user_id = _subject_as_uuid(claims)
        except TokenError as e:
            logger.info(f"Logout with an unusable refresh token: {e.error_code}")
            return None

        await self.blacklist.add(refresh_token, user_id, claims.expires_at)
        logger.info(f"Refresh token revoked for user {user_id}")
        return user_id

    async def cleanup(self, now: datetime | None = None) -> int:
        """Drop blacklist entries for tokens that have expired anyway."""
        removed = await self.blacklist.sweep_expired(now or datetime.now(UTC))
        logger.info(f"Blacklist cleanup removed {removed} expired entries")
        return removed


def _subject_as_uuid(claims: TokenClaims) -> uuid.UUID:
    try:
        return uuid.UUID(claims.subject)
    except ValueError as e:
        raise InvalidTokenError("Token subject is not a user id") from e
