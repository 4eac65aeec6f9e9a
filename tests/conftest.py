"""Pytest configuration and fixtures for session auth tests.

Tests run against an in-memory SQLite database (aiosqlite) and a fake
Kakao backend served through httpx.MockTransport, so no network or
external services are needed.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-signing-key-" + "0" * 32  # >= 32 bytes
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REFRESH_TOKEN_TRANSPORT"] = "cookie"
os.environ["COOKIE_SECURE"] = "true"
os.environ["KAKAO_CLIENT_ID"] = "test-client-id"
os.environ["KAKAO_ALLOWED_REDIRECT_URIS"] = "http://localhost:3000/callback,https://app.example.com/callback"
os.environ.pop("REDIS_URL", None)

ALLOWED_REDIRECT_URI = "http://localhost:3000/callback"

from sessionauth.core.retry import RetryConfig  # noqa: E402
from sessionauth.services.kakao import KakaoClient  # noqa: E402
from sessionauth.services.state_store import InMemoryStateStore  # noqa: E402

# No backoff in tests
FAST_RETRY = RetryConfig(max_retries=2, base_delay=0.0, jitter=False)


# --- Fake identity provider ---


class FakeKakao:
    """Scriptable stand-in for the Kakao token, profile and logout endpoints."""

    def __init__(self):
        self.token_status = 200
        self.token_json: Any = {"access_token": "pt1", "token_type": "bearer"}
        self.profile_status = 200
        self.profile_json: Any = {
            "id": 42,
            "kakao_account": {"profile": {"nickname": "Ann"}},
        }
        self.logout_status = 200
        self.requests: list[httpx.Request] = []

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/token":
            return httpx.Response(self.token_status, json=self.token_json)
        if request.url.path == "/v2/user/me":
            return httpx.Response(self.profile_status, json=self.profile_json)
        if request.url.path == "/v1/user/logout":
            return httpx.Response(self.logout_status, json={"id": 42})
        return httpx.Response(404, json={"msg": "not found"})


@pytest.fixture
def fake_kakao() -> FakeKakao:
    return FakeKakao()


@pytest.fixture
def kakao_client(fake_kakao) -> KakaoClient:
    """Kakao client wired to the fake backend."""
    return KakaoClient(
        transport=httpx.MockTransport(fake_kakao.handler),
        retry_config=FAST_RETRY,
    )


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore(ttl_seconds=600)


@pytest.fixture
def codec():
    from sessionauth.services.token_codec import get_token_codec

    return get_token_codec()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a fresh in-memory SQLite engine with all tables."""
    import sessionauth.models  # noqa: F401
    from sessionauth.core.database import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def file_session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a file database.

    Every session gets its own connection, so concurrent sessions contend
    on the database lock the way separate requests do.
    """
    import sessionauth.models  # noqa: F401
    from sessionauth.core.database import Base

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 10},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def login_orchestrator(db_session, state_store, kakao_client):
    from sessionauth.services.login import LoginOrchestrator

    return LoginOrchestrator(
        db_session,
        state_store=state_store,
        provider=kakao_client,
    )


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession, login_orchestrator
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database and provider overrides."""
    from sessionauth.api.auth import get_login_orchestrator
    from sessionauth.core.database import get_db
    from sessionauth.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_login_orchestrator] = lambda: login_orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test User objects."""
    from sessionauth.models.user import User

    async def _create_user(
        provider: str = "kakao",
        provider_id: str | None = None,
        email: str | None = "user@example.com",
        name: str | None = "Test User",
    ) -> User:
        user = User(
            provider=provider,
            provider_id=provider_id or str(uuid.uuid4().int % 10**10),
            email=email,
            name=name,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def token_factory(codec):
    """Factory for signing tokens for a user."""
    from datetime import timedelta

    from sessionauth.services.token_codec import TokenKind

    def _create_token(
        user=None,
        kind: TokenKind = TokenKind.REFRESH,
        ttl: timedelta = timedelta(days=1),
        subject: str | None = None,
    ) -> str:
        return codec.sign(subject or str(user.id), kind, ttl, email=getattr(user, "email", None))

    return _create_token


def refresh_cookie(response) -> tuple[str | None, str | None]:
    """Return (value, raw header) of the refreshToken Set-Cookie, if any."""
    headers = response.headers
    # httpx and starlette spell the multi-value accessor differently
    raw = headers.get_list("set-cookie") if hasattr(headers, "get_list") else headers.getlist("set-cookie")
    for header in raw:
        name, _, rest = header.partition("=")
        if name.strip() == "refreshToken":
            return rest.split(";", 1)[0].strip('"'), header
    return None, None
