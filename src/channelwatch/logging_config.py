"""Logging configuration and custom formatters for channelwatch.

Provides the record factory, context-id filter and formatters used by the
application. Logs are emitted either human readable, with any ``extra``
fields appended as ``key:value`` pairs, or as JSON lines.
"""

from collections.abc import Mapping
from contextvars import ContextVar
import json
import logging
from logging.config import dictConfig
import sys
from typing import Any, Literal

APP_LOGGER_NAME = "channelwatch"

_original_log_record_factory = logging.getLogRecordFactory()


def custom_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    """Create a log record carrying the attributes of the exception chain.

    Walks ``__cause__``/``__context__`` of the logged exception, collecting the
    public attributes of each exception (e.g. ``channel_id``) and its message,
    so formatters can print a compact semantic trace instead of a stack.

    Args:
        *args: Arguments passed to the original log record factory.
        **kwargs: Keyword arguments passed to the original log record factory.

    Returns:
        LogRecord with ``exc_custom_attrs`` and ``semantic_trace`` when an
        exception is attached.
    """
    record = _original_log_record_factory(*args, **kwargs)
    if not (record.exc_info and record.exc_info[1]):
        return record

    collected_attrs: dict[str, Any] = {}
    chain_messages: list[str] = []
    current_exc: BaseException | None = record.exc_info[1]
    while current_exc:
        for name, val in vars(current_exc).items():
            if not name.startswith("_") and val is not None:
                collected_attrs.setdefault(name, val)
        chain_messages.append(str(current_exc) or type(current_exc).__name__)
        current_exc = current_exc.__cause__ or current_exc.__context__

    if collected_attrs:
        record.exc_custom_attrs = collected_attrs
    record.semantic_trace = chain_messages
    return record


_context_id_var: ContextVar[str | None] = ContextVar("context_id", default=None)


def set_context_id(context_id: str) -> None:
    """Set the context ID for the current async context.

    Every record logged afterwards within the same context (e.g. one
    background task) carries this ID.

    Args:
        context_id: The context identifier, e.g. ``"sync-1700000000"``.
    """
    _context_id_var.set(context_id)


class ContextIdFilter(logging.Filter):
    """Inject the current context_id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context_id = _context_id_var.get()
        if context_id is not None:
            record.context_id = context_id
        return True


_should_include_stacktrace: bool = False

_STANDARD_RECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
        "context_id",
        "exc_custom_attrs",
        "semantic_trace",
    }
)


def _format_extra_value(value: Any) -> str:
    if isinstance(value, dict | list | tuple | set):
        try:
            return json.dumps(
                value if not isinstance(value, set) else sorted(value, key=str),
                sort_keys=True,
                separators=(", ", ":"),
                default=str,
            )
        except TypeError:
            return f"[Unserializable Value: {type(value).__name__}]"  # type: ignore
    return str(value)  # type: ignore


class HumanReadableExtrasFormatter(logging.Formatter):
    """Human readable formatter that appends ``extra`` fields to each line.

    Output looks like::

        2024-01-01 12:00:00 INFO [channelwatch.sync] CtxID:sync-1 channel_id:3 - Reading feed.

    When stack traces are disabled, an attached exception is rendered as its
    chain of messages (``Error: ...`` / ``Caused by: ...``).
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: Literal["%", "{", "$"] = "%",
        validate: bool = True,
        *,
        defaults: Mapping[str, Any] | None = None,
    ):
        super().__init__(fmt, datefmt, style, validate, defaults=defaults)

    def format(self, record: logging.LogRecord) -> str:
        prefix_parts = [
            self.formatTime(record, self.datefmt),
            record.levelname,
            f"[{record.name}]",
        ]
        ctx_id = getattr(record, "context_id", None)
        if ctx_id is not None:
            prefix_parts.append(f"CtxID:{ctx_id}")

        extras: dict[str, Any] = {}
        exc_custom_attrs = getattr(record, "exc_custom_attrs", None)
        if isinstance(exc_custom_attrs, dict):
            extras.update(exc_custom_attrs)  # type: ignore
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                extras[key] = value

        parts = [" ".join(prefix_parts)]
        if extras:
            parts.append(
                " ".join(f"{k}:{_format_extra_value(v)}" for k, v in extras.items())
            )
        parts.append(f"- {record.getMessage()}")
        line = " ".join(parts)

        if record.exc_info:
            if _should_include_stacktrace:
                if not record.exc_text:
                    record.exc_text = self.formatException(record.exc_info)
                line += "\n" + record.exc_text
            else:
                trace: list[str] = getattr(record, "semantic_trace", [])
                for i, msg in enumerate(trace):
                    line += f"\nError: {msg}" if i == 0 else f"\n  Caused by: {msg}"

        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)
        return line


LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "context_id_filter": {
            "()": ContextIdFilter,
        },
    },
    "formatters": {
        "human_readable_formatter": {
            "()": HumanReadableExtrasFormatter,
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "json_formatter": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console_handler": {
            "class": "logging.StreamHandler",
            "formatter": "human_readable_formatter",
            "stream": "ext://sys.stdout",
            "filters": ["context_id_filter"],
        },
    },
    "loggers": {
        APP_LOGGER_NAME: {
            "handlers": ["console_handler"],
            "level": "INFO",
            "propagate": False,
        },
        "apscheduler": {
            "handlers": ["console_handler"],
            "level": "WARNING",
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console_handler"],
        "level": "WARNING",
    },
}


def setup_logging(
    log_format_type: Literal["human", "json"],
    app_log_level_name: str,
    include_stacktrace: bool,
) -> None:
    """Configure logging for the application.

    Args:
        log_format_type: Format for logs ('human' or 'json').
        app_log_level_name: Logging level name (e.g., 'INFO', 'DEBUG').
        include_stacktrace: Whether to include full stack traces in error logs.
    """
    global _should_include_stacktrace
    _should_include_stacktrace = include_stacktrace

    logging.setLogRecordFactory(custom_record_factory)

    log_level_upper = app_log_level_name.upper()
    if not isinstance(getattr(logging, log_level_upper, None), int):
        print(
            f"Warning: Invalid LOG_LEVEL '{app_log_level_name}'. Defaulting to INFO.",
            file=sys.stderr,
        )
        log_level_upper = "INFO"
    LOGGING_CONFIG["loggers"][APP_LOGGER_NAME]["level"] = log_level_upper

    formatter = (
        "json_formatter"
        if log_format_type.lower() == "json"
        else "human_readable_formatter"
    )
    LOGGING_CONFIG["handlers"]["console_handler"]["formatter"] = formatter

    dictConfig(LOGGING_CONFIG)
