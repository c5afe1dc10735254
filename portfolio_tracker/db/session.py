"""Database engine and session utilities."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from portfolio_tracker.config import get_settings
from portfolio_tracker.db.base import Base

logger = logging.getLogger(__name__)

_BEGIN_MODE_OPTION = "portfolio_begin_mode"


def _take_over_sqlite_transactions(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
    # Stop the driver from deferring BEGIN until the first write; _begin_sqlite emits it instead.
    dbapi_connection.isolation_level = None


def _enable_sqlite_wal(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _begin_sqlite(conn) -> None:
    """Open a real transaction so every SELECT in it reads the same snapshot.

    Writers ask for ``IMMEDIATE`` so they take the write lock before reading.
    """

    mode = conn.get_execution_options().get(_BEGIN_MODE_OPTION)
    conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


class Database:
    """Own the async engine and hand out short-lived sessions.

    This is the only way the rest of the application reaches the ledger and
    the asset cache: reads go through :meth:`read_view`, writes through
    :meth:`transaction`.
    """

    def __init__(self, url: str | None = None, **engine_options):
        self._url = url or get_settings().database_url
        self._engine: AsyncEngine = create_async_engine(self._url, future=True, echo=False, **engine_options)
        write_engine = self._engine
        if self._engine.dialect.name == "sqlite":
            sync_engine = self._engine.sync_engine
            event.listen(sync_engine, "connect", _take_over_sqlite_transactions)
            if ":memory:" not in self._url:
                event.listen(sync_engine, "connect", _enable_sqlite_wal)
            event.listen(sync_engine, "begin", _begin_sqlite)
            write_engine = self._engine.execution_options(**{_BEGIN_MODE_OPTION: "IMMEDIATE"})
        self._session_factory = async_sessionmaker(
            bind=self._engine, expire_on_commit=False, class_=AsyncSession
        )
        self._write_session_factory = async_sessionmaker(
            bind=write_engine, expire_on_commit=False, class_=AsyncSession
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create all tables defined on the declarative metadata."""

        # Import models so that SQLAlchemy is aware of all tables before create_all runs.
        import portfolio_tracker.models  # noqa: F401  # pylint: disable=unused-import

        try:
            async with self._engine.begin() as connection:
                await connection.run_sync(Base.metadata.create_all)
        except SQLAlchemyError:
            logger.exception("Failed to initialise database schema")
            raise

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def read_view(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside one transaction so every read sees the same state."""

        async with self._session_factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session whose work commits atomically, or rolls back on error."""

        async with self._write_session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError:
                logger.exception("Database transaction failed")
                raise


__all__ = ["Database"]
