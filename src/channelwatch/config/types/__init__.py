"""Aggregated config data types."""

from .cron_expression import CronExpression

__all__ = ["CronExpression"]
