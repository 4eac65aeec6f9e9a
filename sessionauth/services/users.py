"""Local user records for provider accounts."""

import logging
import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sessionauth.models.user import User

logger = logging.getLogger(__name__)


class ProviderProfile(Protocol):
    """The validated subset of a provider profile needed for an upsert."""

    external_id: str
    email: str | None
    nickname: str | None


class UserService:
    """Lookup and upsert of users keyed by (provider, provider_id)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        """Get user by ID."""
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_provider(self, provider: str, provider_id: str) -> User | None:
        """Get user by provider account."""
        result = await self.session.execute(
            select(User).where(User.provider == provider, User.provider_id == provider_id)
        )
        return result.scalar_one_or_none()

    async def upsert_provider_user(self, provider: str, profile: ProviderProfile) -> User:
        """Create the user on first login, otherwise refresh mutable fields.

        The display name always follows the provider. Email is only filled
        in when the local record has none.
        """
        user = await self.get_by_provider(provider, profile.external_id)
        if user is None:
            user = User(
                provider=provider,
                provider_id=profile.external_id,
                email=profile.email,
                name=profile.nickname,
            )
            try:
                # A duplicate rolls back to this savepoint only
                async with self.session.begin_nested():
                    self.session.add(user)
                    await self.session.flush()
            except IntegrityError:
                # A concurrent first login created the same account
                user = await self.get_by_provider(provider, profile.external_id)
                if user is None:
                    raise
                logger.info(f"Concurrent signup resolved for {provider} user {user.id}")
            else:
                logger.info(f"Created {provider} user {user.id}")
                return user

        if user.name != profile.nickname:
            user.name = profile.nickname
        if user.email is None and profile.email:
            user.email = profile.email
        await self.session.flush()
        return user
