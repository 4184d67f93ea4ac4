from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging

from sqlalchemy.pool import NullPool

from shared.config import settings

logger = logging.getLogger(__name__)

# Only set pool parameters for PostgreSQL (SQLite doesn't support them)
engine_kwargs = {
    "echo": False,
    "future": True,
}

if "postgresql" in settings.database_url:
    engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

engine = create_async_engine(
    settings.database_url,
    **engine_kwargs
)

SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI to get database session."""
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database (create tables)."""
    from shared.database.base import Base
    import shared.models  # noqa: F401  registers tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db():
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")


@asynccontextmanager
async def task_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session on a throwaway engine.

    Celery tasks drive async code with asyncio.run, one event loop per
    call, so they cannot share the pooled engine of the API process.
    """
    task_engine = create_async_engine(settings.database_url, poolclass=NullPool)
    session_factory = async_sessionmaker(
        task_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    try:
        async with session_factory() as session:
            yield session
    finally:
        await task_engine.dispose()
