"""Merge fetched channel feeds into the store.

For each channel, videos the feed lists for the first time are created, and
videos the feed no longer lists are pruned if the user has watched them.
Unwatched videos are kept even after they drop out of the feed.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
import logging
import time

from ..db import VideoDatabase
from ..db.types import Channel, Video
from ..exceptions import ChannelUnreachableError, DurationLookupError
from ..feed import FeedEntry, FeedFetcher, FetchedFeed
from ..file_manager import FileManager
from ..thumbnail_downloader import ThumbnailDownloader
from ..worker.types import ProgressCallback
from .duration_lookup import DurationLookup
from .types import ChannelOutcome, RunResult

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Reconcile the store with the current feeds of a list of channels.

    Channels are processed in the given order. A channel whose feed cannot
    be fetched is recorded in ``RunResult.not_found`` and skipped; store
    failures abort the whole run.

    Attributes:
        _feed_fetcher: Fetches and parses channel feeds.
        _video_db: Database manager for video records.
        _duration_lookup: Looks up durations of new videos when enabled.
        _thumbnail_downloader: Downloads thumbnails of new videos.
        _file_manager: Deletes thumbnails of pruned videos.
    """

    def __init__(
        self,
        feed_fetcher: FeedFetcher,
        video_db: VideoDatabase,
        duration_lookup: DurationLookup,
        thumbnail_downloader: ThumbnailDownloader,
        file_manager: FileManager,
    ):
        self._feed_fetcher = feed_fetcher
        self._video_db = video_db
        self._duration_lookup = duration_lookup
        self._thumbnail_downloader = thumbnail_downloader
        self._file_manager = file_manager

    async def _new_video(
        self, channel: Channel, entry: FeedEntry, result: RunResult
    ) -> Video:
        duration = 0
        try:
            duration = await self._duration_lookup.lookup(entry.external_id) or 0
        except DurationLookupError as e:
            e.title = entry.title
            logger.warning(
                "Duration lookup failed, storing video without duration.",
                extra={"channel_id": channel.id, "external_id": entry.external_id},
                exc_info=e,
            )
            result.duration_errors.append(e)

        return Video(
            channel_id=channel.id,  # type: ignore[arg-type]
            title=entry.title,
            external_id=entry.external_id,
            published=entry.published,
            thumbnail_url=entry.thumbnail_url,
            watched=False,
            duration=duration,
        )

    async def _apply_feed(
        self, channel: Channel, feed: FetchedFeed, result: RunResult
    ) -> ChannelOutcome:
        """Compute and commit the inserts and prunes of one channel.

        Raises:
            DatabaseOperationError: If the store cannot be read or written.
        """
        channel_id: int = channel.id  # type: ignore[assignment]
        existing_ids = await self._video_db.get_existing_external_ids(
            entry.external_id for entry in feed.entries
        )
        new_videos = [
            await self._new_video(channel, entry, result)
            for entry in feed.entries
            if entry.external_id not in existing_ids
        ]

        seen_ids = feed.seen_ids
        stale = [
            video
            for video in await self._video_db.get_videos(channel_id=channel_id)
            if video.external_id not in seen_ids
        ]
        pruned = [video for video in stale if video.watched]

        inserted = await self._video_db.apply_channel_changes(
            channel_id,
            new_videos,
            [video.id for video in pruned if video.id is not None],
        )

        # Files are touched only after the channel's transaction committed.
        stored, thumbnail_errors = await self._thumbnail_downloader.download_for_videos(
            inserted
        )
        result.thumbnail_errors.extend(thumbnail_errors)
        await self._video_db.set_thumbnail_files(stored)
        for video in inserted:
            if video.id in stored:
                video.thumbnail_file = stored[video.id]
        await self._file_manager.delete_thumbnails(
            video.thumbnail_file for video in pruned
        )

        return ChannelOutcome(
            channel_id=channel_id,
            reachable=True,
            created=len(inserted),
            deleted=len(pruned),
            retained=len(stale) - len(pruned),
        )

    async def run(
        self,
        channels: Sequence[Channel],
        progress: ProgressCallback | None = None,
    ) -> RunResult:
        """Reconcile every channel with its feed.

        Args:
            channels: Channels to process, in order.
            progress: Optional callback receiving (fraction done, message).

        Returns:
            The outcome of the run, including unreachable channels and
            per-video failures.

        Raises:
            DatabaseOperationError: If the store fails; channels processed
                before the failure stay committed.
        """
        result = RunResult(start_time=datetime.now(UTC))
        started = time.perf_counter()
        total = len(channels)
        logger.info("Starting reconciliation run.", extra={"channels": total})

        for i, channel in enumerate(channels):
            log_params = {"channel_id": channel.id, "channel_name": channel.name}
            try:
                feed = await self._feed_fetcher.fetch(channel)
            except ChannelUnreachableError as e:
                logger.warning(
                    "Channel feed unreachable, skipping channel.",
                    extra=log_params,
                    exc_info=e,
                )
                result.not_found.append(channel)
                outcome = ChannelOutcome(channel_id=channel.id, reachable=False)  # type: ignore[arg-type]
            else:
                outcome = await self._apply_feed(channel, feed, result)
                logger.debug(
                    "Channel reconciled.",
                    extra={
                        **log_params,
                        "videos_created": outcome.created,
                        "videos_deleted": outcome.deleted,
                        "videos_retained": outcome.retained,
                    },
                )
            result.per_channel.append(outcome)
            if progress:
                progress((i + 1) / total, f"Reading {channel.name} feed...")

        result.total_duration_seconds = time.perf_counter() - started
        log_level = logging.WARNING if result.has_errors else logging.INFO
        logger.log(log_level, "Reconciliation run completed.", extra=result.summary_dict())
        return result
