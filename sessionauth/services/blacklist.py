"""Durable blacklist of consumed and revoked refresh tokens.

Only a one-way fingerprint of each token is stored, so read access to the
table cannot be turned into a usable session.
"""

import hashlib
import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sessionauth.models.token_blacklist import BlacklistedRefreshToken

logger = logging.getLogger(__name__)


def fingerprint(token: str) -> str:
    """SHA-256 hex digest of the exact wire form of ``token``.

    No normalisation is applied: a token that differs by a single byte is
    a different token.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class BlacklistStore:
    """Blacklist operations on top of an async session.

    The store never commits; the surrounding unit of work does.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_blacklisted(self, token: str) -> bool:
        """Check whether ``token`` was already rotated or revoked."""
        return await self._exists_hash(fingerprint(token))

    async def add(self, token: str, user_id: uuid.UUID, expires_at: datetime) -> bool:
        """Blacklist ``token`` until ``expires_at``.

        Idempotent: a fingerprint that is already present (including one
        inserted concurrently) is left alone. Returns True if this call
        created the entry.
        """
        values = {
            "token_hash": fingerprint(token),
            "user_id": user_id,
            "expires_at": _as_utc(expires_at),
            "created_at": datetime.now(UTC),
        }
        dialect = self.session.bind.dialect.name if self.session.bind is not None else ""

        if dialect in ("postgresql", "sqlite"):
            stmt_factory = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                stmt_factory(BlacklistedRefreshToken)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["token_hash"])
            )
            result: CursorResult[Any] = await self.session.execute(stmt)  # type: ignore[assignment]
            created = result.rowcount == 1
        else:
            created = await self._insert_if_absent(values)

        if created:
            logger.info(
                f"Refresh token blacklisted: user_id={user_id}, "
                f"fingerprint={values['token_hash'][:12]}, expires_at={values['expires_at']}"
            )
        else:
            logger.debug(f"Refresh token already blacklisted: fingerprint={values['token_hash'][:12]}")
        return created

    async def _insert_if_absent(self, values: dict[str, Any]) -> bool:
        """Portable fallback for dialects without ON CONFLICT."""
        if await self._exists_hash(values["token_hash"]):
            return False
        try:
            async with self.session.begin_nested():
                await self.session.execute(insert(BlacklistedRefreshToken).values(**values))
        except IntegrityError:
            # Lost a race with a concurrent revocation of the same token
            return False
        return True

    async def _exists_hash(self, token_hash: str) -> bool:
        result = await self.session.execute(
            select(BlacklistedRefreshToken.token_hash).where(
                BlacklistedRefreshToken.token_hash == token_hash
            )
        )
        return result.scalar_one_or_none() is not None

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Remove entries whose token has expired naturally. Returns count removed."""
        cutoff = _as_utc(now or datetime.now(UTC))
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(BlacklistedRefreshToken).where(BlacklistedRefreshToken.expires_at < cutoff)
        )
        return result.rowcount or 0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
