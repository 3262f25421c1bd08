"""
Database connection management.
Handles async SQLAlchemy engine and session creation.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from types import TracebackType

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from jobpipe.config import Settings, get_settings
from jobpipe.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class Database:
    """
    Owner of the async engine and session factory for the job store.

    Constructed explicitly at process start and disposed at shutdown, either
    through ``connect()``/``dispose()`` or as an async context manager.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int | None = None,
        max_overflow: int | None = None,
        echo: bool = False,
    ):
        """
        Initialize the database wrapper. No connection is opened yet.

        Args:
            database_url: SQLAlchemy async database URL.
            pool_size: Connection pool size. Uses NullPool when omitted.
            max_overflow: Extra connections allowed beyond the pool size.
            echo: Whether to log emitted SQL.
        """
        self.database_url = database_url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Database":
        """Create a Database configured from application settings."""
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.log_level.upper() == "DEBUG",
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._engine

    def connect(self) -> None:
        """
        Create the engine and session factory.
        Should be called on application startup.
        """
        if self._engine is not None:
            return

        if self._pool_size is None:
            self._engine = create_async_engine(
                self.database_url,
                poolclass=NullPool,
                echo=self._echo,
            )
        else:
            self._engine = create_async_engine(
                self.database_url,
                pool_size=self._pool_size,
                max_overflow=self._max_overflow or 0,
                echo=self._echo,
                pool_pre_ping=True,
            )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database connection initialized")

    async def dispose(self) -> None:
        """
        Close the database connection.
        Should be called on application shutdown.
        """
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "Database":
        self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """
        Open a session that commits on success and rolls back on error.

        Yields:
            AsyncSession: An async database session.

        Raises:
            RuntimeError: If the database is not connected.
            StoreUnavailableError: If the database cannot be reached.
        """
        if self._session_factory is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        try:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except (OperationalError, InterfaceError, OSError) as e:
            raise StoreUnavailableError(f"Job store unavailable: {e}") from e

