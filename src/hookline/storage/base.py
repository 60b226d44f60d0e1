"""Base storage class and helpers.

Contains engine/session lifecycle, schema creation, and error translation
shared by the storage mixins.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from hookline.config import Settings
from hookline.exceptions import ConfigurationError, PersistenceError

from .retry import StreamCounterConflict
from .schema import metadata

logger = logging.getLogger(__name__)

# Hard cap applied to every list query
MAX_QUERY_LIMIT = 1000


def clamp_limit(limit: int, default: int = 50) -> int:
    """Clamp a caller-supplied limit to 1..MAX_QUERY_LIMIT (default when <= 0)."""
    if limit <= 0:
        return default
    return min(limit, MAX_QUERY_LIMIT)


class StorageBase:
    """Base class for Hookline storage with initialization and helpers.

    Provides:
    - Engine creation (SQLite via aiosqlite, PostgreSQL via asyncpg)
    - Table creation
    - Session factory access
    - Translation of SQLAlchemy errors into PersistenceError
    """

    def __init__(
        self,
        settings: Settings | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize storage.

        Args:
            settings: Configuration. Defaults to a fresh Settings().
            engine: Pre-built engine (ownership stays with the caller).
        """
        self._settings = settings or Settings()
        self._engine: AsyncEngine | None = engine
        self._owns_engine = engine is None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def engine(self) -> AsyncEngine:
        """Get the engine, raising if not initialized."""
        if self._engine is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get the session factory, raising if not initialized."""
        if self._session_factory is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._session_factory

    async def initialize(self) -> None:
        """Create the engine (if needed) and ensure tables exist."""
        if self._engine is None:
            self._engine = self._create_engine()
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        with self._persistence_errors("create schema"):
            async with self._engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        logger.info("Storage initialized (%s)", self._engine.url.get_backend_name())

    async def close(self) -> None:
        """Dispose the engine if this storage created it."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._session_factory = None

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _create_engine(self) -> AsyncEngine:
        """Create an async engine configured for the database in use."""
        settings = self._settings

        try:
            url = make_url(settings.database_url)
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid database_url: {e}") from e
        if "+" not in url.drivername:
            raise ConfigurationError(
                f"database_url must name an async driver, e.g. {url.drivername}+asyncpg://..."
            )

        if settings.is_sqlite:
            # Each session gets its own connection; SQLite serializes writers
            engine = create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                poolclass=NullPool,
                connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
            )
            self._setup_sqlite_pragmas(engine)
        else:
            engine = create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
            )

        return engine

    @staticmethod
    def _setup_sqlite_pragmas(engine: AsyncEngine) -> None:
        """Enable foreign keys and WAL on every new SQLite connection."""

        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    @contextmanager
    def _persistence_errors(self, operation: str) -> Iterator[None]:
        """Translate storage failures into PersistenceError."""
        try:
            yield
        except (SQLAlchemyError, StreamCounterConflict) as e:
            logger.error("Storage operation failed: %s: %s", operation, e)
            raise PersistenceError(f"{operation} failed: {e}") from e


__all__ = ["MAX_QUERY_LIMIT", "StorageBase", "clamp_limit"]
