# pyright: reportPrivateUsage=false

"""Tests for the ReconciliationEngine against a real store."""

from collections.abc import AsyncGenerator, Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from channelwatch.db import ChannelDatabase, VideoDatabase
from channelwatch.db.sqlalchemy_core import SqlalchemyCore
from channelwatch.db.types import Channel, Video
from channelwatch.exceptions import (
    ChannelUnreachableError,
    DatabaseOperationError,
    DurationLookupError,
    ThumbnailDownloadError,
)
from channelwatch.feed import FeedEntry, FeedFetcher, FetchedFeed
from channelwatch.file_manager import FileManager
from channelwatch.logging_config import setup_logging
from channelwatch.migrations import LATEST_SCHEMA_VERSION
from channelwatch.path_manager import PathManager
from channelwatch.sync import DurationLookup, ReconciliationEngine
from channelwatch.thumbnail_downloader import ThumbnailDownloader


def entry(external_id: str, day: int = 1) -> FeedEntry:
    """Build a feed entry."""
    return FeedEntry(
        external_id=external_id,
        title=f"Title {external_id}",
        link=f"https://www.youtube.com/watch?v={external_id}",
        published=datetime(2024, 2, day, tzinfo=UTC),
        thumbnail_url=f"https://i.ytimg.com/vi/{external_id}/hqdefault.jpg",
    )


def feed(*entries: FeedEntry, rejected: Iterable[str] = ()) -> FetchedFeed:
    """Build a fetched feed."""
    return FetchedFeed(entries=list(entries), rejected_ids=frozenset(rejected))


# --- Fixtures ---


@pytest_asyncio.fixture
async def db_core(tmp_path: Path) -> AsyncGenerator[SqlalchemyCore]:
    """Provides an initialized SqlalchemyCore instance for testing."""
    core = SqlalchemyCore(tmp_path)
    await core.initialize(LATEST_SCHEMA_VERSION)
    yield core
    await core.close()


@pytest.fixture
def paths(tmp_path: Path) -> PathManager:
    """Provides a PathManager rooted in a temporary directory."""
    return PathManager(tmp_path)


@pytest.fixture
def video_db(db_core: SqlalchemyCore) -> VideoDatabase:
    """Provides a VideoDatabase instance for testing."""
    return VideoDatabase(db_core)


@pytest_asyncio.fixture
async def channel(db_core: SqlalchemyCore) -> Channel:
    """Provides a stored channel."""
    return await ChannelDatabase(db_core).add_channel(
        Channel(name="Main", external_id="UC_main")
    )


@pytest.fixture
def mock_fetcher() -> MagicMock:
    """Provides a FeedFetcher mock."""
    fetcher = MagicMock(spec=FeedFetcher)
    fetcher.fetch = AsyncMock()
    return fetcher


@pytest.fixture
def mock_lookup() -> MagicMock:
    """Provides a disabled DurationLookup mock."""
    lookup = MagicMock(spec=DurationLookup)
    lookup.lookup = AsyncMock(return_value=None)
    return lookup


@pytest.fixture
def mock_downloader(paths: PathManager) -> MagicMock:
    """Provides a ThumbnailDownloader mock that writes a file per video."""

    async def _download(
        videos: Iterable[Video],
    ) -> tuple[dict[int, str], list[ThumbnailDownloadError]]:
        stored: dict[int, str] = {}
        for video in videos:
            assert video.id is not None
            file_name = paths.thumbnail_file_name(video.id)
            (await paths.thumbnail_path(file_name)).write_bytes(b"jpg")
            stored[video.id] = file_name
        return stored, []

    downloader = MagicMock(spec=ThumbnailDownloader)
    downloader.download_for_videos = AsyncMock(side_effect=_download)
    return downloader


@pytest.fixture
def engine(
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    mock_lookup: MagicMock,
    mock_downloader: MagicMock,
    paths: PathManager,
) -> ReconciliationEngine:
    """Provides a ReconciliationEngine with mocked remote collaborators."""
    return ReconciliationEngine(
        feed_fetcher=mock_fetcher,
        video_db=video_db,
        duration_lookup=mock_lookup,
        thumbnail_downloader=mock_downloader,
        file_manager=FileManager(paths),
    )


async def stored_ids(video_db: VideoDatabase) -> set[str]:
    """Return the external ids of all stored videos."""
    return {video.external_id for video in await video_db.get_videos()}


# --- Tests ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_first_run_creates_videos(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
    paths: PathManager,
):
    """Every listed video is created unwatched with its thumbnail stored."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1), entry("v2", 2))

    result = await engine.run([channel])

    videos = await video_db.get_videos()
    assert {v.external_id for v in videos} == {"v1", "v2"}
    assert all(not v.watched and v.duration == 0 for v in videos)
    assert all(v.channel_id == channel.id for v in videos)
    for video in videos:
        assert video.thumbnail_file == f"{video.id}.jpg"
        assert (paths.base_thumbnails_dir / f"{video.id}.jpg").exists()
    assert result.created_count == 2
    assert result.deleted_count == 0
    assert not result.has_errors


@pytest.mark.unit
@pytest.mark.asyncio
async def test_watched_video_leaving_feed_is_pruned(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
    paths: PathManager,
):
    """A watched video the feed dropped is deleted along with its thumbnail."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1), entry("v2", 2))
    await engine.run([channel])
    [v1] = [v for v in await video_db.get_videos() if v.external_id == "v1"]
    assert v1.id is not None
    await video_db.set_watched([v1.id], True)
    thumbnail = paths.base_thumbnails_dir / f"{v1.id}.jpg"
    assert thumbnail.exists()

    mock_fetcher.fetch.return_value = feed(entry("v2", 2), entry("v3", 3))
    result = await engine.run([channel])

    assert await stored_ids(video_db) == {"v2", "v3"}
    assert not thumbnail.exists()
    [outcome] = result.per_channel
    assert (outcome.created, outcome.deleted, outcome.retained) == (1, 1, 0)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unwatched_video_leaving_feed_is_kept(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
):
    """Unwatched videos stay although the feed no longer lists them."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1), entry("v2", 2))
    await engine.run([channel])

    mock_fetcher.fetch.return_value = feed(entry("v2", 2))
    result = await engine.run([channel])

    assert await stored_ids(video_db) == {"v1", "v2"}
    [outcome] = result.per_channel
    assert (outcome.created, outcome.deleted, outcome.retained) == (0, 0, 1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rerun_is_idempotent(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    mock_downloader: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
):
    """Running again with the same feed changes nothing."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1), entry("v2", 2))
    await engine.run([channel])
    before = {(v.id, v.external_id) for v in await video_db.get_videos()}

    result = await engine.run([channel])

    assert {(v.id, v.external_id) for v in await video_db.get_videos()} == before
    assert result.created_count == 0
    assert result.deleted_count == 0
    mock_downloader.download_for_videos.assert_awaited_with([])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rejected_entries_are_not_pruned(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
):
    """A watched video whose entry failed to parse is still listed, so it stays."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1))
    await engine.run([channel])
    await video_db.set_watched([v.id for v in await video_db.get_videos()], True)  # type: ignore[misc]

    mock_fetcher.fetch.return_value = feed(rejected=["v1"])
    await engine.run([channel])

    assert await stored_ids(video_db) == {"v1"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_video_of_another_channel_is_not_duplicated(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    db_core: SqlalchemyCore,
    channel: Channel,
):
    """An id already stored under another channel is not created again."""
    other = await ChannelDatabase(db_core).add_channel(
        Channel(name="Other", external_id="UC_other")
    )
    mock_fetcher.fetch.return_value = feed(entry("shared", 1))

    result = await engine.run([channel, other])

    assert await video_db.count_videos() == 1
    assert [o.created for o in result.per_channel] == [1, 0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unreachable_channel_is_skipped(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    db_core: SqlalchemyCore,
    channel: Channel,
):
    """A failing feed is reported and the remaining channels still run."""
    broken = await ChannelDatabase(db_core).add_channel(
        Channel(name="Broken", external_id="UC_broken")
    )
    mock_fetcher.fetch.side_effect = [
        ChannelUnreachableError("404", channel_id=broken.id),
        feed(entry("v1", 1)),
    ]
    progress = MagicMock()

    result = await engine.run([broken, channel], progress)

    assert [c.name for c in result.not_found] == ["Broken"]
    assert [o.reachable for o in result.per_channel] == [False, True]
    assert await stored_ids(video_db) == {"v1"}
    assert result.has_errors
    assert [c.args for c in progress.call_args_list] == [
        (0.5, "Reading Broken feed..."),
        (1.0, "Reading Main feed..."),
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_durations_looked_up_for_new_videos(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    mock_lookup: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
):
    """Found durations are stored; failures leave 0 and are reported."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1), entry("v2", 2))
    mock_lookup.lookup.side_effect = [
        95,
        DurationLookupError("quota", external_id="v2"),
    ]

    result = await engine.run([channel])

    durations = {v.external_id: v.duration for v in await video_db.get_videos()}
    assert durations == {"v1": 95, "v2": 0}
    [error] = result.duration_errors
    assert error.external_id == "v2"
    assert error.title == "Title v2"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_thumbnail_failures_are_reported(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    mock_downloader: MagicMock,
    video_db: VideoDatabase,
    channel: Channel,
):
    """A failed thumbnail keeps the video without a stored file."""
    mock_fetcher.fetch.return_value = feed(entry("v1", 1))
    mock_downloader.download_for_videos.side_effect = None
    mock_downloader.download_for_videos.return_value = (
        {},
        [ThumbnailDownloadError("boom", url="https://i.ytimg.com/x.jpg")],
    )

    result = await engine.run([channel])

    [video] = await video_db.get_videos()
    assert video.thumbnail_file is None
    assert len(result.thumbnail_errors) == 1
    assert result.has_errors


@pytest.mark.unit
@pytest.mark.asyncio
async def test_store_failure_aborts_run(
    mock_fetcher: MagicMock,
    mock_lookup: MagicMock,
    mock_downloader: MagicMock,
    paths: PathManager,
    channel: Channel,
):
    """Store errors propagate instead of being collected."""
    failing_db = MagicMock(spec=VideoDatabase)
    failing_db.get_existing_external_ids = AsyncMock(
        side_effect=DatabaseOperationError("disk I/O error")
    )
    engine = ReconciliationEngine(
        feed_fetcher=mock_fetcher,
        video_db=failing_db,
        duration_lookup=mock_lookup,
        thumbnail_downloader=mock_downloader,
        file_manager=FileManager(paths),
    )
    mock_fetcher.fetch.return_value = feed(entry("v1", 1))

    with pytest.raises(DatabaseOperationError):
        await engine.run([channel])


@pytest.fixture
def debug_logging() -> Iterator[None]:
    """Configure application logging at DEBUG for one test."""
    setup_logging(
        log_format_type="human", app_log_level_name="DEBUG", include_stacktrace=False
    )
    yield
    setup_logging(
        log_format_type="human", app_log_level_name="INFO", include_stacktrace=False
    )


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.usefixtures("debug_logging")
async def test_run_with_application_logging(
    engine: ReconciliationEngine,
    mock_fetcher: MagicMock,
    video_db: VideoDatabase,
    db_core: SqlalchemyCore,
    channel: Channel,
):
    """A run completes and returns its result with every log level enabled."""
    unreachable = await ChannelDatabase(db_core).add_channel(
        Channel(name="Broken", external_id="UC_broken")
    )
    mock_fetcher.fetch.side_effect = [
        feed(entry("v1", 1), entry("v2", 2)),
        ChannelUnreachableError("Failed to fetch channel feed."),
    ]

    result = await engine.run([channel, unreachable])

    assert await stored_ids(video_db) == {"v1", "v2"}
    assert result.created_count == 2
    assert result.not_found == [unreachable]
    assert result.summary_dict()["videos_created"] == 2
