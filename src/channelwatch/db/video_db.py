"""Database management for videos.

Besides CRUD, this module holds the per-channel write used by reconciliation:
all inserts and prunes of one channel are committed as one transaction.
"""

from collections.abc import Iterable, Mapping, Sequence
import logging

from sqlalchemy import delete, func, update
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select

from ..exceptions import NotFoundError, VideoNotFoundError
from .decorators import (
    handle_channel_db_errors,
    handle_db_errors,
    handle_video_db_errors,
)
from .sqlalchemy_core import SqlalchemyCore
from .types import Channel, Video

logger = logging.getLogger(__name__)


def _video_filters(
    channel_id: int | None,
    watched: bool | None,
    subscribed_only: bool,
    missing_duration: bool,
) -> list[ColumnElement[bool]]:
    filters: list[ColumnElement[bool]] = []
    if channel_id is not None:
        filters.append(col(Video.channel_id) == channel_id)
    if watched is not None:
        filters.append(col(Video.watched) == watched)
    if subscribed_only:
        subscribed_ids = select(Channel.id).where(col(Channel.subscribed).is_(True))
        filters.append(col(Video.channel_id).in_(subscribed_ids))
    if missing_duration:
        filters.append(col(Video.duration) == 0)
    return filters


class VideoDatabase:
    """Manage all database operations for videos.

    Attributes:
        _db: Core SQLAlchemy database manager.
    """

    def __init__(self, db_core: SqlalchemyCore):
        self._db = db_core

    # --- Queries ---

    @handle_video_db_errors("check video existence", video_id_from="external_id")
    async def exists_by_external_id(self, external_id: str) -> bool:
        """Return True if any video, of any channel, has this external id."""
        async with self._db.session() as session:
            stmt = select(Video.id).where(col(Video.external_id) == external_id)
            return (await session.execute(stmt.limit(1))).first() is not None

    @handle_db_errors("find existing external IDs")
    async def get_existing_external_ids(self, external_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``external_ids`` already present in the store.

        Matches videos of every channel, not only one.
        """
        wanted = set(external_ids)
        if not wanted:
            return set()
        async with self._db.session() as session:
            stmt = select(Video.external_id).where(col(Video.external_id).in_(wanted))
            return set((await session.execute(stmt)).scalars().all())

    @handle_video_db_errors("get video by ID")
    async def get_video_by_id(self, video_id: int) -> Video:
        """Retrieve a video by its store id.

        Raises:
            VideoNotFoundError: If the video does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            video = await session.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError("Video not found.", video_id=video_id)
            return video

    @handle_db_errors("get videos")
    async def get_videos(
        self,
        *,
        channel_id: int | None = None,
        watched: bool | None = None,
        subscribed_only: bool = False,
        missing_duration: bool = False,
    ) -> list[Video]:
        """Return videos matching all given filters, newest first.

        Args:
            channel_id: Only videos of this channel.
            watched: Only videos with this watched flag.
            subscribed_only: Only videos of subscribed channels.
            missing_duration: Only videos whose duration is unknown (0).

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        filters = _video_filters(channel_id, watched, subscribed_only, missing_duration)
        async with self._db.session() as session:
            stmt = (
                select(Video)
                .where(*filters)
                .order_by(col(Video.published).desc(), col(Video.id).desc())
            )
            return list((await session.execute(stmt)).scalars().all())

    @handle_db_errors("count videos")
    async def count_videos(
        self,
        *,
        channel_id: int | None = None,
        watched: bool | None = None,
        subscribed_only: bool = False,
        missing_duration: bool = False,
    ) -> int:
        """Count videos matching all given filters (see ``get_videos``).

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        filters = _video_filters(channel_id, watched, subscribed_only, missing_duration)
        async with self._db.session() as session:
            stmt = select(func.count()).select_from(Video).where(*filters)
            return (await session.execute(stmt)).scalar_one()

    # --- Writes ---

    @handle_channel_db_errors("apply channel changes")
    async def apply_channel_changes(
        self,
        channel_id: int,
        new_videos: Sequence[Video],
        prune_video_ids: Sequence[int],
    ) -> list[Video]:
        """Insert new videos and delete pruned ones of a channel atomically.

        Args:
            channel_id: The channel the changes belong to.
            new_videos: Videos to insert; each gets ``channel_id`` assigned.
            prune_video_ids: Ids of this channel's videos to delete.

        Returns:
            The inserted videos with their ids set.

        Raises:
            DatabaseOperationError: If the transaction fails; nothing is applied.
        """
        log_params = {
            "channel_id": channel_id,
            "new_videos": len(new_videos),
            "pruned_videos": len(prune_video_ids),
        }
        logger.debug("Applying channel changes.", extra=log_params)
        async with self._db.session() as session:
            for video in new_videos:
                video.channel_id = channel_id
                session.add(video)
            if prune_video_ids:
                await session.execute(
                    delete(Video)
                    .where(col(Video.channel_id) == channel_id)
                    .where(col(Video.id).in_(prune_video_ids))
                )
            await session.commit()
        logger.debug("Channel changes committed.", extra=log_params)
        return list(new_videos)

    @handle_db_errors("update video durations")
    async def update_durations(self, durations: Mapping[int, int]) -> None:
        """Write several durations in one transaction.

        Args:
            durations: Mapping of video id to duration in seconds.

        Raises:
            DatabaseOperationError: If the transaction fails; nothing is written.
        """
        if not durations:
            return
        async with self._db.session() as session:
            for video_id, duration in durations.items():
                await session.execute(
                    update(Video)
                    .where(col(Video.id) == video_id)
                    .values(duration=duration)
                )
            await session.commit()
        logger.debug("Video durations updated.", extra={"count": len(durations)})

    @handle_db_errors("set thumbnail files")
    async def set_thumbnail_files(self, thumbnail_files: Mapping[int, str]) -> None:
        """Record stored thumbnail file names, keyed by video id."""
        if not thumbnail_files:
            return
        async with self._db.session() as session:
            for video_id, file_name in thumbnail_files.items():
                await session.execute(
                    update(Video)
                    .where(col(Video.id) == video_id)
                    .values(thumbnail_file=file_name)
                )
            await session.commit()

    @handle_db_errors("set watched")
    async def set_watched(self, video_ids: Sequence[int], watched: bool) -> int:
        """Set the watched flag of several videos.

        Returns:
            Number of videos updated.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        if not video_ids:
            return 0
        async with self._db.session() as session:
            result = await session.execute(
                update(Video).where(col(Video.id).in_(video_ids)).values(watched=watched)
            )
            await session.commit()
        return self._db.as_cursor_result(result).rowcount

    @handle_video_db_errors("set start time")
    async def set_start_time(self, video_id: int, start_time: int | None) -> None:
        """Set or clear the resume offset of a video.

        Raises:
            VideoNotFoundError: If the video does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            stmt = (
                update(Video)
                .where(col(Video.id) == video_id)
                .values(start_time=start_time)
            )
            try:
                self._db.assert_exactly_one_row_affected(
                    await session.execute(stmt), video_id=video_id
                )
            except NotFoundError as e:
                raise VideoNotFoundError("Video not found.", video_id=video_id) from e
            await session.commit()

    @handle_db_errors("delete videos")
    async def delete_videos(self, video_ids: Sequence[int]) -> list[Video]:
        """Delete videos by id in one transaction.

        Returns:
            The deleted videos; unknown ids are ignored.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        if not video_ids:
            return []
        async with self._db.session() as session:
            stmt = select(Video).where(col(Video.id).in_(video_ids))
            deleted = list((await session.execute(stmt)).scalars().all())
            await session.execute(delete(Video).where(col(Video.id).in_(video_ids)))
            await session.commit()
        logger.info("Videos deleted.", extra={"count": len(deleted)})
        return deleted
