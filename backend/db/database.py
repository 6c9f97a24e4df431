"""SQLAlchemy async engine and session factory.

A ``Database`` owns one engine (and its connection pool) plus the session
factory built on it. The application creates exactly one at startup and
hands it to request dependencies through ``app.state``; nothing in this
module holds a global engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite checks foreign keys per connection, and only when asked to
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str, settings: Optional[Settings] = None) -> AsyncEngine:
    """Create and configure async SQLAlchemy engine.

    Args:
        url: Database URL (``postgresql+asyncpg://`` or ``sqlite+aiosqlite://``).
        settings: Pool and echo settings.

    Returns:
        Async SQLAlchemy engine instance.
    """
    settings = settings or get_settings()
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO)
    if url.startswith("sqlite"):
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    engine = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory.

    Args:
        engine: SQLAlchemy async engine instance.

    Returns:
        Async sessionmaker instance.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


class Database:
    """Connection pool handle injected into request dependencies and services."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    @classmethod
    def from_url(cls, url: str, settings: Optional[Settings] = None) -> "Database":
        return cls(create_db_engine(url, settings))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create tables that do not exist yet. Migrations are run externally."""
        from db.base import Base
        import db.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database ping failed: %s", e)
            return False

    async def close(self) -> None:
        """Dispose of the pool. Called at application shutdown."""
        await self.engine.dispose()
