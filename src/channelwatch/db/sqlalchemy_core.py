"""Core async database components using SQLAlchemy and SQLModel."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging
from pathlib import Path
import sqlite3
from typing import Any

from sqlalchemy import Connection, event, inspect
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import CursorResult, Engine, Result
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import ConnectionPoolEntry
from sqlmodel import SQLModel

from ..exceptions import DatabaseOperationError, NotFoundError
from .decorators import handle_db_errors
from .types import SCHEMA_VERSION_KEY, Channel, Setting

logger = logging.getLogger(__name__)

DB_FILE_NAME = "channelwatch.db"


class SqlalchemyCore:
    """Core wrapper for SQLAlchemy async operations.

    Every transaction opened through this engine starts with an explicit
    ``BEGIN``, so schema changes (``ALTER TABLE``, ``CREATE INDEX``) commit or
    roll back together with the data written next to them.

    Attributes:
        engine: The async engine bound to the store file.
        async_session_maker: Factory for sessions that keep loaded attributes
            after commit.
    """

    def __init__(self, db_dir: Path) -> None:
        db_path = db_dir / DB_FILE_NAME
        db_url = f"sqlite+aiosqlite:///{db_path.resolve()}"
        self.engine: AsyncEngine = create_async_engine(
            db_url,
            echo=logger.isEnabledFor(logging.DEBUG),
            pool_size=1,  # single writer
            connect_args={
                "check_same_thread": False,
                "timeout": 60.0,
            },
        )
        self.async_session_maker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        _enable_transactional_ddl(self.engine)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Provide a transactional session.

        Yields:
            An active, transactional AsyncSession.
        """
        async with self.async_session_maker() as session:
            yield session

    @asynccontextmanager
    async def begin(self) -> AsyncGenerator[AsyncConnection]:
        """Provide a connection inside a transaction committed on exit.

        Used for work that needs a synchronous connection through
        ``run_sync``, such as schema inspection and migrations.

        Yields:
            An AsyncConnection with an open transaction.
        """
        async with self.engine.begin() as conn:
            yield conn

    @handle_db_errors("initialize the store")
    async def initialize(self, schema_version: int) -> bool:
        """Create the tables a store needs.

        A brand-new store (no channel table) gets the current schema and its
        version marker stamped at ``schema_version``. An existing store only
        gains tables it is missing, so a legacy store keeps its layout and
        marker for the migration pipeline to upgrade.

        Args:
            schema_version: Version to stamp on a brand-new store.

        Returns:
            True if the store was brand-new.

        Raises:
            DatabaseOperationError: If the tables cannot be created.
        """
        async with self.begin() as conn:
            is_new = not await conn.run_sync(_has_table, Channel.__tablename__)
            await conn.run_sync(SQLModel.metadata.create_all)
            if is_new:
                stmt = insert(Setting).values(
                    key=SCHEMA_VERSION_KEY, value=str(schema_version)
                )
                await conn.execute(stmt.on_conflict_do_nothing())

        logger.info(
            "Store initialized.",
            extra={
                "new_store": is_new,
                "stamped_version": schema_version if is_new else None,
            },
        )
        return is_new

    async def close(self) -> None:
        """Close the database engine and all its connections."""
        await self.engine.dispose()

    @staticmethod
    def as_cursor_result(result: Result[Any]) -> CursorResult[Any]:
        """Coerce a Result to a CursorResult.

        Raises:
            DatabaseOperationError: If the result is not backed by a cursor.
        """
        if isinstance(result, CursorResult):
            return result
        raise DatabaseOperationError(
            f"Expected cursor-backed SQLAlchemy result, got {type(result).__name__}.",
        )

    @staticmethod
    def assert_exactly_one_row_affected(
        result: Result[Any], **identifiers: int | str | None
    ) -> None:
        """Validate that exactly one row was affected by a write.

        Args:
            result: The result from the write operation.
            **identifiers: Key-value pairs identifying the row (e.g., video_id=3).

        Raises:
            NotFoundError: If no rows were affected.
            DatabaseOperationError: If more than one row was affected.
        """
        match SqlalchemyCore.as_cursor_result(result).rowcount:
            case 0:
                raise NotFoundError("Record not found.")
            case 1:
                pass
            case rowcount:
                raise DatabaseOperationError(
                    f"Write affected {rowcount} rows, expected 1.", **identifiers
                )


def _has_table(sync_conn: Connection, table_name: str) -> bool:
    return inspect(sync_conn).has_table(table_name)


def _enable_transactional_ddl(engine: AsyncEngine) -> None:
    """Let SQLAlchemy, not the sqlite3 driver, decide when transactions begin.

    The driver otherwise commits implicitly before DDL statements.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _(dbapi_connection: Any, _connection_record: ConnectionPoolEntry) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")


@event.listens_for(Engine, "connect")
def _(
    dbapi_connection: sqlite3.Connection, _connection_record: ConnectionPoolEntry
) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL;")
    cursor.execute("PRAGMA synchronous = NORMAL;")
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.close()
