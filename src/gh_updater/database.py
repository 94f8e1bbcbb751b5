"""Database connection and session management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from gh_updater.config import Settings
from gh_updater.models.apps import Base


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine; SQLite URLs skip the pool tuning."""
    if settings.database_url.startswith("sqlite"):
        if ":memory:" in settings.database_url or settings.database_url.endswith("://"):
            # One shared connection, otherwise each session sees an empty database
            return create_async_engine(
                settings.database_url,
                echo=settings.debug,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(settings.database_url, echo=settings.debug)

    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,  # Verify connection before use
        pool_size=10,
        max_overflow=10,
        pool_recycle=1800,
        pool_timeout=30,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Transactional session: commit on success, roll back on error.

    Usage:
        async with session_scope(factory) as session:
            session.add(record)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_schema(engine: AsyncEngine) -> None:
    """Create tables directly; used by tests and SQLite deployments."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
