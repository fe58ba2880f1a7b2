"""Ordered history of store layout changes.

Stores written before versioning existed have the layout::

    channel(id, name, url)
    video(id, title, url, date, thumbnail_url, watched, channel_id)

where ``url`` holds full feed and watch URLs and ``date`` a ``YYYY-MM-DD``
string. Each step below moves the layout one version closer to the current
table definitions. Adding a version means appending a step.
"""

from collections.abc import Callable
from datetime import UTC, datetime
import logging

from alembic.operations import Operations
import sqlalchemy as sa
from sqlalchemy import Connection

from ..db.types import TimezoneAwareDatetime
from .types import MigrationStep

logger = logging.getLogger(__name__)

LEGACY_DATE_FORMAT = "%Y-%m-%d"

_channel = sa.table(
    "channel",
    sa.column("id", sa.Integer),
    sa.column("url", sa.String),
    sa.column("external_id", sa.String),
)
_video = sa.table(
    "video",
    sa.column("id", sa.Integer),
    sa.column("url", sa.String),
    sa.column("date", sa.String),
    sa.column("external_id", sa.String),
    sa.column("published", TimezoneAwareDatetime),
    sa.column("thumbnail_file", sa.String),
)


def _columns(conn: Connection, table_name: str) -> set[str]:
    return {column["name"] for column in sa.inspect(conn).get_columns(table_name)}


def _has_columns(table_name: str, *names: str) -> Callable[[Connection], bool]:
    def check(conn: Connection) -> bool:
        return set(names) <= _columns(conn, table_name)

    return check


def _external_id_from_url(url: str | None) -> str:
    """Return the text after the last ``=`` of a feed or watch URL."""
    return (url or "").rsplit("=", 1)[-1]


def _backfill_external_ids(conn: Connection, table: sa.TableClause) -> None:
    rows = conn.execute(sa.select(table.c.id, table.c.url)).all()
    for row_id, url in rows:
        conn.execute(
            sa.update(table)
            .where(table.c.id == row_id)
            .values(external_id=_external_id_from_url(url))
        )


# --- v1 ---


def _add_channel_subscribed(op: Operations, conn: Connection) -> None:
    op.add_column(
        "channel",
        sa.Column("subscribed", sa.Boolean(), nullable=False, server_default="1"),
    )


# --- v2 ---


def _add_video_duration(op: Operations, conn: Connection) -> None:
    op.add_column(
        "video",
        sa.Column("duration", sa.Integer(), nullable=False, server_default="0"),
    )


# --- v3 ---


def _add_channel_external_id(op: Operations, conn: Connection) -> None:
    op.add_column(
        "channel",
        sa.Column("external_id", sa.String(), nullable=False, server_default=""),
    )
    _backfill_external_ids(conn, _channel)
    op.create_index("ix_channel_external_id", "channel", ["external_id"])


# --- v4 ---


def _add_video_external_id(op: Operations, conn: Connection) -> None:
    op.add_column(
        "video",
        sa.Column("external_id", sa.String(), nullable=False, server_default=""),
    )
    _backfill_external_ids(conn, _video)
    op.create_index("ix_video_external_id", "video", ["external_id"], unique=True)


# --- v5 ---


def _parse_legacy_date(video_id: int, raw: str | None) -> datetime:
    try:
        return datetime.strptime(raw or "", LEGACY_DATE_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        logger.warning(
            "Unparseable legacy video date, using the epoch.",
            extra={"video_id": video_id, "date": raw},
        )
        return datetime(1970, 1, 1, tzinfo=UTC)


def _add_video_published(op: Operations, conn: Connection) -> None:
    op.add_column("video", sa.Column("published", TimezoneAwareDatetime()))
    rows = conn.execute(sa.select(_video.c.id, _video.c.date)).all()
    for video_id, raw_date in rows:
        conn.execute(
            sa.update(_video)
            .where(_video.c.id == video_id)
            .values(published=_parse_legacy_date(video_id, raw_date))
        )


# --- v6 ---


def _add_video_start_time_and_thumbnail_file(
    op: Operations, conn: Connection
) -> None:
    existing = _columns(conn, "video")
    if "start_time" not in existing:
        op.add_column("video", sa.Column("start_time", sa.Integer()))
    if "thumbnail_file" not in existing:
        op.add_column("video", sa.Column("thumbnail_file", sa.String()))
    # Thumbnails of legacy stores are named after the video id.
    conn.execute(
        sa.update(_video)
        .where(_video.c.thumbnail_file.is_(None))
        .values(thumbnail_file=sa.cast(_video.c.id, sa.String).concat(".jpg"))
    )


# --- v7 ---


def _legacy_columns_dropped(conn: Connection) -> bool:
    return "url" not in _columns(conn, "channel") and not (
        {"url", "date"} & _columns(conn, "video")
    )


def _drop_legacy_columns(op: Operations, conn: Connection) -> None:
    if "url" in _columns(conn, "channel"):
        op.drop_column("channel", "url")
    for name in ("url", "date"):
        if name in _columns(conn, "video"):
            op.drop_column("video", name)
    op.create_index(
        "idx_video_channel_watched",
        "video",
        ["channel_id", "watched"],
        if_not_exists=True,
    )
    op.create_index("idx_video_published", "video", ["published"], if_not_exists=True)


MIGRATIONS: tuple[MigrationStep, ...] = (
    MigrationStep(
        target_version=1,
        description="Add subscribed flag to channels",
        is_applied=_has_columns("channel", "subscribed"),
        apply=_add_channel_subscribed,
    ),
    MigrationStep(
        target_version=2,
        description="Add duration to videos",
        is_applied=_has_columns("video", "duration"),
        apply=_add_video_duration,
    ),
    MigrationStep(
        target_version=3,
        description="Store channel external ids",
        is_applied=_has_columns("channel", "external_id"),
        apply=_add_channel_external_id,
    ),
    MigrationStep(
        target_version=4,
        description="Store video external ids",
        is_applied=_has_columns("video", "external_id"),
        apply=_add_video_external_id,
    ),
    MigrationStep(
        target_version=5,
        description="Store video publication times",
        is_applied=_has_columns("video", "published"),
        apply=_add_video_published,
    ),
    MigrationStep(
        target_version=6,
        description="Add start time and thumbnail file to videos",
        is_applied=_has_columns("video", "start_time", "thumbnail_file"),
        apply=_add_video_start_time_and_thumbnail_file,
    ),
    MigrationStep(
        target_version=7,
        description="Drop legacy URL and date columns",
        is_applied=_legacy_columns_dropped,
        apply=_drop_legacy_columns,
    ),
)

LATEST_SCHEMA_VERSION = MIGRATIONS[-1].target_version
