"""Async engine and session lifecycle for the context store."""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models.base import Base

if TYPE_CHECKING:
    from ..config import DatabaseSettings

logger = structlog.get_logger()

# Seconds a SQLite writer waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30


class DatabaseSessionManager:
    """Owns the async engine and hands out sessions.

    Works against PostgreSQL (asyncpg, pooled) in production and SQLite
    (aiosqlite) in development and tests.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Factory for sessions that keep objects usable
            after commit
    """

    def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
        """Create the engine.

        Args:
            database_url: postgresql+asyncpg:// or sqlite+aiosqlite:// URL
            **engine_kwargs: Forwarded to ``create_async_engine``; pool sizing
                is dropped for SQLite, whose pools reject it
        """
        if database_url.startswith("sqlite"):
            engine_kwargs.pop("pool_size", None)
            engine_kwargs.pop("max_overflow", None)
            engine_kwargs.setdefault("connect_args", {"timeout": SQLITE_BUSY_TIMEOUT})
        else:
            engine_kwargs.setdefault("pool_recycle", 3600)

        self.engine: AsyncEngine = create_async_engine(
            database_url, pool_pre_ping=True, **engine_kwargs
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> DatabaseSessionManager:
        manager = cls(
            settings.url,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            echo=settings.echo,
        )
        logger.info("database_configured", dialect=manager.dialect)
        return manager

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session that rolls back anything uncommitted on error.

        Example:
            async with session_manager.session() as session:
                messages = await MessageRepository(session).list_active(session_id)
        """
        async with self.session_factory() as session:
            try:
                yield session
            except BaseException:
                # Includes CancelledError so a cancelled compaction leaves nothing behind
                await session.rollback()
                raise

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session generator for FastAPI dependencies."""
        async with self.session() as session:
            yield session

    async def create_all(self) -> None:
        """Create the schema from model metadata.

        For tests and local SQLite runs; deployments use Alembic.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()
