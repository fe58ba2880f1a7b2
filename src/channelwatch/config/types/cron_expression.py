"""Cron expression data type for the sync schedule."""

from dataclasses import dataclass, field
from datetime import datetime

from croniter import croniter


@dataclass
class CronExpression:
    """Validated cron expression split into its scheduling fields.

    Accepts 5-field expressions, 6-field expressions whose last field is the
    second, and the usual aliases (``@hourly``, ``@daily``, ...). Year fields
    are rejected.

    Attributes:
        cron_str: Cron expression string as given.
        minute: Minute field (0-59).
        hour: Hour field (0-23).
        day: Day of month field (1-31).
        month: Month field (1-12).
        day_of_week: Day of week field (0-6, Sunday=0).
        second: Second field (0-59), None for 5-field expressions.
    """

    cron_str: str = field(repr=False, hash=False, compare=False)
    _itr: croniter = field(init=False, repr=False, hash=False, compare=False)

    minute: int | str | None = field(init=False)
    hour: int | str | None = field(init=False)
    day: int | str | None = field(init=False)
    month: int | str | None = field(init=False)
    day_of_week: int | str | None = field(init=False)
    second: int | str | None = field(init=False)

    def __post_init__(self):
        self._itr = croniter(self.cron_str)
        match self._itr.expressions:
            case (minute, hour, day, month, day_of_week):
                second = None
            case (minute, hour, day, month, day_of_week, second):
                pass
            case (_, _, _, _, _, _, year):
                raise ValueError(
                    f"Invalid cron expression: year value not allowed (but used {year})"
                )
            case _:
                raise ValueError(f"Invalid cron expression: {self.cron_str}")
        self.minute = minute
        self.hour = hour
        self.day = day
        self.month = month
        self.day_of_week = day_of_week
        self.second = second

    def next(self, start_time: datetime) -> datetime:
        """Return the first matching datetime after ``start_time``."""
        return self._itr.get_next(datetime, start_time=start_time)  # type: ignore

    def __str__(self) -> str:
        return self.cron_str
