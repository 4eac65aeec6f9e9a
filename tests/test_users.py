"""Tests for provider user upserts."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from sessionauth.models.user import User
from sessionauth.services.blacklist import BlacklistStore
from sessionauth.services.kakao import KakaoProfile
from sessionauth.services.users import UserService

pytestmark = pytest.mark.asyncio


class TestUpsertProviderUser:
    async def test_first_login_creates_user(self, db_session):
        service = UserService(db_session)

        user = await service.upsert_provider_user(
            "kakao", KakaoProfile(external_id="42", email="ann@example.com", nickname="Ann")
        )

        assert user.provider_id == "42"
        assert user.email == "ann@example.com"
        assert user.name == "Ann"

    async def test_existing_email_kept(self, db_session, user_factory):
        existing = await user_factory(provider_id="42", email="old@example.com", name="Old")
        service = UserService(db_session)

        user = await service.upsert_provider_user(
            "kakao", KakaoProfile(external_id="42", email="new@example.com", nickname="Ann")
        )

        assert user.id == existing.id
        assert user.email == "old@example.com"
        assert user.name == "Ann"

    async def test_lost_signup_race_keeps_earlier_work(self, db_session, user_factory):
        existing = await user_factory(provider_id="42", name="Old")
        await BlacklistStore(db_session).add(
            "earlier-token", existing.id, datetime.now(UTC) + timedelta(days=1)
        )
        service = UserService(db_session)
        real_lookup = service.get_by_provider
        lookups = []

        # The first lookup misses, as if another login inserted the row just after it
        async def racing_lookup(provider: str, provider_id: str) -> User | None:
            lookups.append(provider_id)
            if len(lookups) == 1:
                return None
            return await real_lookup(provider, provider_id)

        with patch.object(service, "get_by_provider", side_effect=racing_lookup):
            user = await service.upsert_provider_user(
                "kakao", KakaoProfile(external_id="42", nickname="Ann")
            )

        assert len(lookups) == 2
        assert user.id == existing.id
        assert user.name == "Ann"
        assert await BlacklistStore(db_session).is_blacklisted("earlier-token")
        users = (await db_session.execute(select(User).where(User.provider_id == "42"))).scalars().all()
        assert len(users) == 1

    async def test_missing_user_after_conflict_reraises(self, db_session, user_factory):
        from sqlalchemy.exc import IntegrityError

        await user_factory(provider_id="42")
        service = UserService(db_session)

        async def always_missing(provider: str, provider_id: str) -> User | None:
            return None

        with patch.object(service, "get_by_provider", side_effect=always_missing):
            with pytest.raises(IntegrityError):
                await service.upsert_provider_user("kakao", KakaoProfile(external_id="42"))

    async def test_lookup_by_id(self, db_session, user_factory):
        existing = await user_factory()
        service = UserService(db_session)

        assert (await service.get_by_id(existing.id)).id == existing.id
        assert await service.get_by_id(uuid.uuid4()) is None
