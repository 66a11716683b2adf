"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations (aiosqlite
in tests). A ``Database`` instance is created by the composition root and
handed to every component that needs persistence; there is no module-level
engine.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from src.config import Settings
from src.core import DeadlineExceededException, RepositoryException
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime column.

    PostgreSQL stores ``timestamptz`` natively. SQLite has no timezone
    support, so values are stored as naive UTC and re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Database:
    """
    Owns the async engine and session factory.

    Usage:
        database = Database.from_settings(settings)
        async with database.session("ticket.resolve") as session:
            ...
        await database.close()
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        # Fix asyncpg SSL: replace sslmode with ssl for asyncpg compatibility
        if "+asyncpg" in url:
            url = url.replace("sslmode=", "ssl=")

        engine_options = {"echo": echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_options.update(pool_size=pool_size, max_overflow=max_overflow)

        self._engine: AsyncEngine = create_async_engine(url, **engine_options)
        self._session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Prevent lazy loading after commit
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build a handle from application settings."""
        return cls(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self, operation: str = "transaction") -> AsyncGenerator[AsyncSession, None]:
        """
        Transaction-scoped session.

        Commits when the block exits cleanly and rolls back otherwise.
        Driver errors are wrapped in ``RepositoryException`` tagged with
        ``operation``.

        Args:
            operation: Name of the calling operation, used in error context

        Yields:
            AsyncSession: SQLAlchemy async session
        """
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise RepositoryException(operation, str(e)) from e
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """
        Create all database tables.

        This should only be used for development/testing.
        Production should use migrations (Alembic).
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of pooled connections."""
        await self._engine.dispose()


@asynccontextmanager
async def deadline(timeout_seconds: Optional[float], operation: str) -> AsyncGenerator[None, None]:
    """
    Bound the enclosed block by ``timeout_seconds``.

    Expiry surfaces as ``DeadlineExceededException``. Task cancellation is
    left untouched so callers still observe ``asyncio.CancelledError``.
    """
    if timeout_seconds is None:
        yield
        return

    try:
        async with asyncio.timeout(timeout_seconds):
            yield
    except TimeoutError as e:
        logger.warning(
            "Operation deadline exceeded",
            extra={"operation": operation, "timeout_seconds": timeout_seconds}
        )
        raise DeadlineExceededException(operation, timeout_seconds) from e
