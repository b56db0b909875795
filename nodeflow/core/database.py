"""Database engine and session factory.

The engine is created on first use so importing the package never opens a
connection pool; tests point ``DATABASE_URL`` at SQLite before that happens.
"""

from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from nodeflow.config import get_settings

logger = structlog.get_logger()


@lru_cache
def get_engine() -> AsyncEngine:
    settings = get_settings()
    kwargs = {}
    if not settings.database_url.startswith("sqlite"):
        kwargs = {
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_timeout": settings.database_pool_timeout,
        }
    return create_async_engine(settings.database_url, echo=settings.debug, **kwargs)


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the API and the job worker."""
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create all tables.

    Only call during development and tests. Use Alembic migrations in production.
    """
    import nodeflow.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_initialized")


async def dispose_engine() -> None:
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        get_engine.cache_clear()
        get_session_maker.cache_clear()
