"""User actions on the channel and video library.

Deletes remove thumbnail files after the store transaction committed; a file
that cannot be removed is logged and does not undo the delete.
"""

from collections.abc import Sequence
import logging

from .db import ChannelDatabase, VideoDatabase
from .db.types import Channel, Video
from .file_manager import FileManager

logger = logging.getLogger(__name__)


class Library:
    """Add, edit and delete channels and videos on behalf of the user.

    Attributes:
        _channel_db: Database manager for channel records.
        _video_db: Database manager for video records.
        _file_manager: Deletes thumbnail files.
    """

    def __init__(
        self,
        channel_db: ChannelDatabase,
        video_db: VideoDatabase,
        file_manager: FileManager,
    ):
        self._channel_db = channel_db
        self._video_db = video_db
        self._file_manager = file_manager

    async def add_channel(
        self, name: str, external_id: str, subscribed: bool = True
    ) -> Channel:
        """Add a channel, or return the existing one with this external id.

        Raises:
            ValueError: If the name or the external id is blank.
            DatabaseOperationError: If the database operation fails.
        """
        if not name.strip() or not external_id.strip():
            raise ValueError("Channel name and external id are required.")
        existing = await self._channel_db.get_channel_by_external_id(external_id)
        if existing is not None:
            logger.info(
                "Channel already tracked.",
                extra={"channel_id": existing.id, "external_id": external_id},
            )
            return existing
        return await self._channel_db.add_channel(
            Channel(name=name.strip(), external_id=external_id, subscribed=subscribed)
        )

    async def update_channel(
        self,
        channel_id: int,
        *,
        name: str | None = None,
        subscribed: bool | None = None,
    ) -> None:
        """Rename a channel or change its subscribed flag.

        Raises:
            ValueError: If the new name is blank.
            ChannelNotFoundError: If the channel does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        if name is not None and not name.strip():
            raise ValueError("Channel name cannot be blank.")
        await self._channel_db.update_channel(
            channel_id,
            name=name.strip() if name is not None else None,
            subscribed=subscribed,
        )

    async def delete_channels(self, channel_ids: Sequence[int]) -> list[Video]:
        """Delete channels with their videos and thumbnail files.

        Returns:
            The deleted videos.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        deleted = await self._channel_db.delete_channels(channel_ids)
        await self._file_manager.delete_thumbnails(
            video.thumbnail_file for video in deleted
        )
        return deleted

    async def delete_videos(self, video_ids: Sequence[int]) -> list[Video]:
        """Delete videos and their thumbnail files.

        Returns:
            The deleted videos.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        deleted = await self._video_db.delete_videos(video_ids)
        await self._file_manager.delete_thumbnails(
            video.thumbnail_file for video in deleted
        )
        return deleted

    async def set_watched(self, video_ids: Sequence[int], watched: bool = True) -> int:
        """Mark videos watched or unwatched; returns the number updated."""
        return await self._video_db.set_watched(video_ids, watched)

    async def set_start_time(self, video_id: int, start_time: int | None) -> None:
        """Set or clear where playback of a video resumes, in seconds.

        Raises:
            ValueError: If the start time is negative.
            VideoNotFoundError: If the video does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        if start_time is not None and start_time < 0:
            raise ValueError("Start time cannot be negative.")
        await self._video_db.set_start_time(video_id, start_time)

    async def count_unwatched(self, channel_id: int | None = None) -> int:
        """Count unwatched videos of one channel, or of all subscribed channels."""
        if channel_id is not None:
            return await self._video_db.count_videos(
                channel_id=channel_id, watched=False
            )
        return await self._video_db.count_videos(watched=False, subscribed_only=True)

    async def unwatched_videos(self, channel_id: int | None = None) -> list[Video]:
        """List unwatched videos newest first, like ``count_unwatched`` counts them."""
        if channel_id is not None:
            return await self._video_db.get_videos(channel_id=channel_id, watched=False)
        return await self._video_db.get_videos(watched=False, subscribed_only=True)
