"""Signed session tokens (compact HS256 JWTs)."""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any

import jwt
from jwt.exceptions import PyJWTError

from sessionauth.core import settings
from sessionauth.core.config import MIN_JWT_SECRET_BYTES
from sessionauth.services.errors import InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")


class TokenKind(str, Enum):
    """What a token may be used for. Never interchangeable."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token."""

    subject: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str
    email: str | None = None


class TokenCodec:
    """Creates and verifies signed, expiring tokens.

    The key is checked once at construction; a short key is a startup
    failure, not a per-request error.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported token algorithm: {algorithm}")
        if len(secret_key.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
            raise ValueError(
                f"Token signing key must be at least {MIN_JWT_SECRET_BYTES} bytes"
            )
        self._key = secret_key
        self._algorithm = algorithm

    def sign(
        self,
        subject: str,
        kind: TokenKind,
        ttl: timedelta,
        email: str | None = None,
    ) -> str:
        """Create a token for ``subject`` that expires ``ttl`` from now."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": subject,
            "type": TokenKind(kind).value,
            "iat": now,
            "exp": now + ttl,
            # Two tokens minted in the same second must still differ
            "jti": secrets.token_hex(16),
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, self._key, algorithm=self._algorithm)

    def _decode(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self._key,
                algorithms=[self._algorithm],
                options={
                    "require": ["sub", "exp", "iat", "type"],
                    "verify_exp": verify_exp,
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

    def verify(self, token: str, expected_kind: TokenKind | None = None) -> TokenClaims:
        """Check signature, then expiry, then (optionally) kind.

        Raises:
            InvalidTokenError: signature, structure or kind is wrong
            TokenExpiredError: token is authentic but expired
        """
        payload = self._decode(token)
        claims = _claims_from_payload(payload)
        if expected_kind is not None and claims.kind is not TokenKind(expected_kind):
            raise InvalidTokenError(f"Not a {TokenKind(expected_kind).value} token")
        return claims

    def kind_of(self, token: str) -> TokenKind:
        """Read the declared kind without verifying the signature.

        Only meaningful in combination with ``verify``.
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e
        return _kind_from_payload(payload)

    def expiry_of(self, token: str) -> datetime:
        """Return the expiry of an authentic token, expired or not."""
        payload = self._decode(token, verify_exp=False)
        return _timestamp(payload, "exp")


def _kind_from_payload(payload: dict[str, Any]) -> TokenKind:
    try:
        return TokenKind(payload.get("type"))
    except ValueError as e:
        raise InvalidTokenError("Token has no recognised type") from e


def _timestamp(payload: dict[str, Any], claim: str) -> datetime:
    value = payload.get(claim)
    if not isinstance(value, int | float):
        raise InvalidTokenError(f"Token claim '{claim}' is malformed")
    return datetime.fromtimestamp(value, tz=UTC)


def _claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise InvalidTokenError("Token missing subject")
    email = payload.get("email")
    return TokenClaims(
        subject=subject,
        kind=_kind_from_payload(payload),
        issued_at=_timestamp(payload, "iat"),
        expires_at=_timestamp(payload, "exp"),
        token_id=str(payload.get("jti", "")),
        email=email if isinstance(email, str) else None,
    )


@lru_cache
def get_token_codec() -> TokenCodec:
    """Process-wide codec built from settings."""
    return TokenCodec(settings.jwt_secret_key, settings.jwt_algorithm)
