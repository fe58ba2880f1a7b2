"""Timezone-aware datetime column type."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, TypeDecorator


class TimezoneAwareDatetime(TypeDecorator[datetime]):
    """DateTime column that only accepts and returns aware datetimes.

    SQLite has no timezone support, so values are normalized to UTC and stored
    naive; values read back get ``tzinfo=UTC`` attached again.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: Any
    ) -> datetime | None:
        """Normalize an aware datetime to naive UTC for storage.

        Raises:
            TypeError: If the datetime is naive.
        """
        if value is None:
            return None
        if not value.tzinfo or value.tzinfo.utcoffset(value) is None:
            raise TypeError("tzinfo is required")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(
        self, value: datetime | None, dialect: Any
    ) -> datetime | None:
        """Attach UTC to a stored naive datetime."""
        if value is None:
            return None
        return value.replace(tzinfo=UTC)
