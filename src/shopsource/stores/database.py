"""
Database connection lifecycle.

A ``Database`` is constructed explicitly at service start and passed to the
components that need it. There is no module-level connection holder: the
engine is opened, handed out through scoped sessions and disposed at
shutdown by whoever owns the ``Database`` instance.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shopsource.exceptions import EventStoreError

logger = logging.getLogger(__name__)


class Database:
    """
    Owns an async SQLAlchemy engine and its session factory.

    Example:
        >>> database = Database("postgresql+asyncpg://localhost/shop")
        >>> async with database:
        ...     store = PostgreSQLEventStore(database.session_factory)
        ...     await store.initialize()

    Args:
        url: SQLAlchemy database URL (``postgresql+asyncpg://...``)
        pool_size: Connections kept open in the pool
        max_overflow: Extra connections allowed under load
        echo: Log every SQL statement
        engine_options: Additional keyword arguments for create_async_engine
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        engine_options: dict[str, Any] | None = None,
    ) -> None:
        self._url = url
        self._engine_options: dict[str, Any] = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": True,
            "echo": echo,
            **(engine_options or {}),
        }
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise EventStoreError("Database is not open; call open() first")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise EventStoreError("Database is not open; call open() first")
        return self._session_factory

    async def open(self) -> None:
        """Create the engine. Calling open() twice is a no-op."""
        if self._engine is not None:
            return
        self._engine = create_async_engine(self._url, **self._engine_options)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("Database engine created", extra={"pool_size": self._engine_options["pool_size"]})

    async def close(self) -> None:
        """Dispose the engine and release every pooled connection."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Scoped session: committed on success, rolled back on error, always closed.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def __aenter__(self) -> Database:
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
