"""User model for accounts linked to an external identity provider."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sessionauth.models.base import BaseModel


class User(BaseModel):
    """A local account created on first login through a provider.

    (provider, provider_id) identifies the external account; ``id`` is the
    subject carried by every session token issued for this user.
    """

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("provider", "provider_id", name="uq_users_provider_account"),)

    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.provider}:{self.provider_id}>"
