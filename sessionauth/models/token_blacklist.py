"""Consumed or revoked refresh tokens, keyed by fingerprint."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sessionauth.core.database import Base
from sessionauth.models.base import utcnow


class BlacklistedRefreshToken(Base):
    """A refresh token that must never be accepted again.

    Only the SHA-256 fingerprint of the token is stored. Entries are created
    on rotation and on logout, and swept once ``expires_at`` has passed.
    """

    __tablename__ = "blacklisted_refresh_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
