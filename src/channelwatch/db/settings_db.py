"""Database access layer for key/value settings and the schema version marker."""

import logging

from sqlalchemy import Integer, cast
from sqlalchemy.dialects.sqlite import Insert, insert
from sqlmodel import col

from .decorators import handle_db_errors
from .sqlalchemy_core import SqlalchemyCore
from .types import SCHEMA_VERSION_KEY, Setting

logger = logging.getLogger(__name__)


def schema_version_upsert(version: int) -> Insert:
    """Build the statement that raises the schema version marker to ``version``.

    The marker is never lowered: an existing marker at or above ``version`` is
    left as it is. The statement runs on async sessions as well as on the
    synchronous connections used by migration steps, so a step and its marker
    bump share one transaction.

    Args:
        version: The schema version to record.

    Returns:
        An INSERT ... ON CONFLICT DO UPDATE statement.
    """
    stmt = insert(Setting).values(key=SCHEMA_VERSION_KEY, value=str(version))
    return stmt.on_conflict_do_update(
        index_elements=[col(Setting.key)],
        set_={"value": str(version)},
        where=cast(col(Setting.value), Integer) < version,
    )


class SettingsDatabase:
    """Manage persisted settings.

    Attributes:
        _db: Core SQLAlchemy database manager.
    """

    def __init__(self, db_core: SqlalchemyCore):
        self._db = db_core

    @handle_db_errors("get setting")
    async def get_setting(self, key: str) -> str | None:
        """Return the value of a setting, or None if it was never set."""
        async with self._db.session() as session:
            setting = await session.get(Setting, key)
            return setting.value if setting else None

    @handle_db_errors("set setting")
    async def set_setting(self, key: str, value: str) -> None:
        """Insert or replace a setting.

        Args:
            key: Setting name.
            value: Setting value.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            stmt = insert(Setting).values(key=key, value=value)
            stmt = stmt.on_conflict_do_update(
                index_elements=[col(Setting.key)], set_={"value": value}
            )
            await session.execute(stmt)
            await session.commit()
        logger.debug("Setting stored.", extra={"key": key})

    async def get_schema_version(self) -> int:
        """Return the schema version marker; 0 when the store predates it.

        Raises:
            DatabaseOperationError: If the database operation fails.
            ValueError: If the stored marker is not an integer.
        """
        raw = await self.get_setting(SCHEMA_VERSION_KEY)
        if raw is None:
            return 0
        return int(raw)

    @handle_db_errors("set schema version")
    async def set_schema_version(self, version: int) -> None:
        """Raise the schema version marker to ``version``; never lowers it.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            await session.execute(schema_version_upsert(version))
            await session.commit()
        logger.debug("Schema version marker written.", extra={"version": version})
