"""Session Auth Database Configuration - Async SQLAlchemy."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from sessionauth.core.config import settings


def _engine_options(database_url: str) -> dict[str, Any]:
    """Connection pool options for the configured backend.

    SQLite (used for local development and tests) does not take
    queue-pool sizing arguments.
    """
    options: dict[str, Any] = {
        # Only echo SQL when debug is explicitly enabled
        "echo": settings.debug and settings.log_level == "DEBUG",
    }
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,  # Verify connection before use
        )
    return options


engine: AsyncEngine = create_async_engine(
    settings.database_url,
    **_engine_options(settings.database_url),
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            # BaseException so asyncio.CancelledError also rolls back
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_models() -> None:
    """Create all tables. Intended for development and tests."""
    import sessionauth.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db_connection() -> bool:
    """Check if database is reachable."""
    from sessionauth.core.logging import get_logger

    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except (OSError, ConnectionError) as e:
        get_logger("database").debug(f"Database connection check failed: {e}")
        return False
    except Exception as e:
        get_logger("database").warning(f"Unexpected error checking database connection: {e}")
        return False
