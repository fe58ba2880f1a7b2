# pyright: reportPrivateUsage=false

"""Tests for the SchemaMigrationPipeline and the migration table."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

from alembic.operations import Operations
from helpers.legacy_store import LEGACY_VIDEOS, create_legacy_store
import pytest
import pytest_asyncio
import sqlalchemy as sa
from sqlalchemy import Connection

from channelwatch.db import ChannelDatabase, SettingsDatabase, VideoDatabase
from channelwatch.db.sqlalchemy_core import SqlalchemyCore
from channelwatch.exceptions import MigrationStepError
from channelwatch.migrations import (
    LATEST_SCHEMA_VERSION,
    Failed,
    MigrationStep,
    PipelineState,
    SchemaMigrationPipeline,
    Succeeded,
)


def _columns(conn: Connection, table_name: str) -> set[str]:
    return {column["name"] for column in sa.inspect(conn).get_columns(table_name)}


def _index_names(conn: Connection, table_name: str) -> set[str]:
    return {index["name"] for index in sa.inspect(conn).get_indexes(table_name)}


def column_step(
    version: int,
    fail: Callable[[], bool] = lambda: False,
    spy: MagicMock | None = None,
) -> MigrationStep:
    """Build a step adding ``extra_<version>`` to the channel table.

    ``fail`` is checked after the column was added, so a failing step has
    already changed the layout when it raises.
    """
    column_name = f"extra_{version}"

    def apply(op: Operations, conn: Connection) -> None:
        if spy is not None:
            spy(version)
        op.add_column("channel", sa.Column(column_name, sa.Integer()))
        if fail():
            raise RuntimeError(f"step {version} exploded")

    return MigrationStep(
        target_version=version,
        description=f"Add {column_name}",
        is_applied=lambda conn: column_name in _columns(conn, "channel"),
        apply=apply,
    )


# --- Fixtures ---


@pytest_asyncio.fixture
async def new_core(tmp_path: Path) -> AsyncGenerator[SqlalchemyCore]:
    """Provides a brand-new store stamped at version 1."""
    core = SqlalchemyCore(tmp_path)
    await core.initialize(1)
    yield core
    await core.close()


@pytest_asyncio.fixture
async def legacy_core(tmp_path: Path) -> AsyncGenerator[SqlalchemyCore]:
    """Provides a store in the pre-versioning layout with sample rows."""
    create_legacy_store(tmp_path)
    core = SqlalchemyCore(tmp_path)
    await core.initialize(LATEST_SCHEMA_VERSION)
    yield core
    await core.close()


async def store_columns(core: SqlalchemyCore, table_name: str) -> set[str]:
    """Return the column names of a table."""
    async with core.begin() as conn:
        return await conn.run_sync(_columns, table_name)


# --- Tests for the migration table ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_legacy_store_reaches_latest_version(legacy_core: SqlalchemyCore):
    """Every step runs and the marker ends at the latest version."""
    settings_db = SettingsDatabase(legacy_core)
    pipeline = SchemaMigrationPipeline(legacy_core, settings_db)

    queue = await pipeline.plan()
    assert queue.target_versions == list(range(1, LATEST_SCHEMA_VERSION + 1))

    outcome = await pipeline.run_all(queue)

    assert isinstance(outcome, Succeeded)
    assert queue.state is PipelineState.SUCCEEDED
    assert await settings_db.get_schema_version() == LATEST_SCHEMA_VERSION
    assert len(await pipeline.plan()) == 0

    video_columns = await store_columns(legacy_core, "video")
    assert {"url", "date"}.isdisjoint(video_columns)
    assert {"external_id", "published", "duration", "start_time"} <= video_columns
    assert "url" not in await store_columns(legacy_core, "channel")
    async with legacy_core.begin() as conn:
        indexes = await conn.run_sync(_index_names, "video")
    assert {
        "ix_video_external_id",
        "idx_video_channel_watched",
        "idx_video_published",
    } <= indexes


@pytest.mark.unit
@pytest.mark.asyncio
async def test_legacy_data_is_preserved(legacy_core: SqlalchemyCore):
    """Migrated rows are readable through the current models."""
    pipeline = SchemaMigrationPipeline(legacy_core, SettingsDatabase(legacy_core))
    await pipeline.run_all(await pipeline.plan())

    channels = await ChannelDatabase(legacy_core).get_channels()
    assert [(c.name, c.external_id, c.subscribed) for c in channels] == [
        ("First Channel", "UC_first", True),
        ("Second Channel", "UC_second", True),
    ]

    videos = {v.external_id: v for v in await VideoDatabase(legacy_core).get_videos()}
    assert set(videos) == {"vid_a", "vid_b", "vid_c"}
    assert videos["vid_a"].published == datetime(2019, 3, 4, tzinfo=UTC)
    assert videos["vid_a"].watched is True
    assert videos["vid_a"].thumbnail_file == "1.jpg"
    assert videos["vid_b"].duration == 0
    assert videos["vid_b"].start_time is None
    assert videos["vid_c"].published == datetime(1970, 1, 1, tzinfo=UTC)
    assert len(videos) == len(LEGACY_VIDEOS)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_existing_thumbnail_file_values_are_kept(tmp_path: Path):
    """Only rows without a thumbnail file get the id-based default name."""
    db_path = create_legacy_store(tmp_path)
    engine = sa.create_engine(f"sqlite:///{db_path}")
    with engine.begin() as conn:
        conn.execute(sa.text("ALTER TABLE video ADD COLUMN thumbnail_file TEXT"))
        conn.execute(
            sa.text("UPDATE video SET thumbnail_file = 'custom.png' WHERE id = 2")
        )
    engine.dispose()

    core = SqlalchemyCore(tmp_path)
    await core.initialize(LATEST_SCHEMA_VERSION)
    try:
        pipeline = SchemaMigrationPipeline(core, SettingsDatabase(core))
        assert isinstance(await pipeline.run_all(await pipeline.plan()), Succeeded)
        videos = {v.external_id: v for v in await VideoDatabase(core).get_videos()}
    finally:
        await core.close()

    assert videos["vid_a"].thumbnail_file == "1.jpg"
    assert videos["vid_b"].thumbnail_file == "custom.png"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_new_store_needs_no_migration(new_core: SqlalchemyCore):
    """A store created with the current layout plans no step."""
    pipeline = SchemaMigrationPipeline(new_core, SettingsDatabase(new_core))

    queue = await pipeline.plan()

    assert len(queue) == 0
    assert queue.is_done
    assert await pipeline.run_all(queue) is None


# --- Tests for the pipeline ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_steps_run_in_order(new_core: SqlalchemyCore):
    """Steps 2 to 5 apply one by one and the marker follows."""
    settings_db = SettingsDatabase(new_core)
    pipeline = SchemaMigrationPipeline(
        new_core, settings_db, [column_step(v) for v in (2, 3, 4, 5)]
    )
    progress = MagicMock()

    queue = await pipeline.plan()
    assert queue.target_versions == [2, 3, 4, 5]
    outcome = await pipeline.run_all(queue, progress)

    assert isinstance(outcome, Succeeded)
    assert [s.target_version for s in queue.completed] == [2, 3, 4, 5]
    assert await settings_db.get_schema_version() == 5
    assert {"extra_2", "extra_5"} <= await store_columns(new_core, "channel")
    assert [c.args for c in progress.call_args_list] == [
        (0.0, "Migrating to version 2: Add extra_2..."),
        (0.25, "Migrating to version 3: Add extra_3..."),
        (0.5, "Migrating to version 4: Add extra_4..."),
        (0.75, "Migrating to version 5: Add extra_5..."),
        (1.0, "Migration finished."),
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_step_halts_queue(new_core: SqlalchemyCore):
    """A failure keeps earlier steps, rolls back its own, and stops the rest."""
    settings_db = SettingsDatabase(new_core)
    spy = MagicMock()
    steps = [
        column_step(2, spy=spy),
        column_step(3, spy=spy),
        column_step(4, fail=lambda: True, spy=spy),
        column_step(5, spy=spy),
    ]
    pipeline = SchemaMigrationPipeline(new_core, settings_db, steps)
    progress = MagicMock()

    queue = await pipeline.plan()
    outcome = await pipeline.run_all(queue, progress)

    assert isinstance(outcome, Failed)
    assert outcome.step.target_version == 4
    assert isinstance(outcome.error, MigrationStepError)
    assert outcome.error.target_version == 4
    assert isinstance(outcome.error.__cause__, RuntimeError)
    assert queue.state is PipelineState.FAILED
    assert queue.target_versions == [4, 5]
    assert [c.args[0] for c in spy.call_args_list] == [2, 3, 4]

    assert await settings_db.get_schema_version() == 3
    columns = await store_columns(new_core, "channel")
    assert {"extra_2", "extra_3"} <= columns
    assert "extra_4" not in columns
    assert progress.call_args.args[1] == "Migrating to version 4: Add extra_4..."

    again = await pipeline.run_next(queue)
    assert again is outcome
    assert spy.call_count == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replan_resumes_after_failure(new_core: SqlalchemyCore):
    """Planning again picks up at the step that failed."""
    settings_db = SettingsDatabase(new_core)
    broken = {"value": True}
    steps = [
        column_step(2),
        column_step(3, fail=lambda: broken["value"]),
        column_step(4),
    ]
    pipeline = SchemaMigrationPipeline(new_core, settings_db, steps)
    assert isinstance(await pipeline.run_all(await pipeline.plan()), Failed)

    broken["value"] = False
    queue = await pipeline.plan()
    assert queue.target_versions == [3, 4]
    assert isinstance(await pipeline.run_all(queue), Succeeded)
    assert await settings_db.get_schema_version() == 4


@pytest.mark.unit
@pytest.mark.asyncio
async def test_structurally_applied_step_is_skipped(new_core: SqlalchemyCore):
    """A change already present is not planned even if the marker is behind."""
    async with new_core.begin() as conn:
        await conn.execute(sa.text("ALTER TABLE channel ADD COLUMN extra_2 INTEGER"))
    pipeline = SchemaMigrationPipeline(
        new_core, SettingsDatabase(new_core), [column_step(2), column_step(3)]
    )

    queue = await pipeline.plan()

    assert queue.target_versions == [3]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plan_from_explicit_version(new_core: SqlalchemyCore):
    """Steps at or below the given version are never planned."""
    pipeline = SchemaMigrationPipeline(
        new_core,
        SettingsDatabase(new_core),
        [column_step(v) for v in (2, 3, 4)],
    )

    queue = await pipeline.plan(current_version=3)

    assert queue.target_versions == [4]
    assert pipeline.latest_version == 4


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_next_on_empty_queue(new_core: SqlalchemyCore):
    """Running an empty queue is a caller error."""
    pipeline = SchemaMigrationPipeline(new_core, SettingsDatabase(new_core), [])
    queue = await pipeline.plan()

    assert pipeline.latest_version == 0
    with pytest.raises(ValueError):
        await pipeline.run_next(queue)


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("versions", [[3, 2], [2, 2], [1, 3, 2]])
async def test_steps_must_ascend(new_core: SqlalchemyCore, versions: list[int]):
    """A migration table out of order is rejected up front."""
    with pytest.raises(ValueError):
        SchemaMigrationPipeline(
            new_core,
            SettingsDatabase(new_core),
            [column_step(v) for v in versions],
        )
