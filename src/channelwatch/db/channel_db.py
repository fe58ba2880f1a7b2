"""Database management for channels."""

from collections.abc import Sequence
import logging
from typing import Any

from sqlalchemy import delete, func, update
from sqlmodel import col, select

from ..exceptions import ChannelNotFoundError, NotFoundError
from .decorators import handle_channel_db_errors, handle_db_errors
from .sqlalchemy_core import SqlalchemyCore
from .types import Channel, Video

logger = logging.getLogger(__name__)


class ChannelDatabase:
    """Manage all database operations for channels.

    Deleting a channel also deletes its videos in the same transaction; the
    deleted videos are returned so callers can remove their thumbnail files.

    Attributes:
        _db: Core SQLAlchemy database manager.
    """

    def __init__(self, db_core: SqlalchemyCore):
        self._db = db_core

    @handle_channel_db_errors("add channel", channel_id_from="channel.external_id")
    async def add_channel(self, channel: Channel) -> Channel:
        """Insert a new channel.

        Args:
            channel: The channel to insert; its id is assigned by the store.

        Returns:
            The inserted channel with its id set.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        log_params = {
            "external_id": channel.external_id,
            "channel_name": channel.name,
        }
        logger.debug("Attempting to add channel.", extra=log_params)
        async with self._db.session() as session:
            session.add(channel)
            await session.commit()
        logger.info("Channel added.", extra={**log_params, "channel_id": channel.id})
        return channel

    @handle_channel_db_errors("get channel by ID")
    async def get_channel_by_id(self, channel_id: int) -> Channel:
        """Retrieve a channel by its store id.

        Raises:
            ChannelNotFoundError: If the channel does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            channel = await session.get(Channel, channel_id)
            if channel is None:
                raise ChannelNotFoundError("Channel not found.", channel_id=channel_id)
            return channel

    @handle_channel_db_errors(
        "get channel by external ID", channel_id_from="external_id"
    )
    async def get_channel_by_external_id(self, external_id: str) -> Channel | None:
        """Return the channel with the given external id, if any."""
        async with self._db.session() as session:
            stmt = select(Channel).where(col(Channel.external_id) == external_id)
            result = await session.execute(stmt)
            return result.scalars().first()

    @handle_db_errors("get channels")
    async def get_channels(self, subscribed: bool | None = None) -> list[Channel]:
        """Return all channels ordered by name, optionally filtered.

        Args:
            subscribed: If given, only return channels with this subscribed flag.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            stmt = select(Channel)
            if subscribed is not None:
                stmt = stmt.where(col(Channel.subscribed) == subscribed)
            stmt = stmt.order_by(func.lower(col(Channel.name)), col(Channel.id))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    @handle_channel_db_errors("update channel")
    async def update_channel(
        self,
        channel_id: int,
        *,
        name: str | None = None,
        subscribed: bool | None = None,
    ) -> None:
        """Update a channel's editable fields; no-op if nothing is given.

        Raises:
            ChannelNotFoundError: If the channel does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        updates: dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if subscribed is not None:
            updates["subscribed"] = subscribed
        if not updates:
            return

        log_params = {"channel_id": channel_id, "updated_fields": list(updates)}
        logger.debug("Attempting to update channel.", extra=log_params)
        async with self._db.session() as session:
            stmt = (
                update(Channel).where(col(Channel.id) == channel_id).values(**updates)
            )
            try:
                self._db.assert_exactly_one_row_affected(
                    await session.execute(stmt), channel_id=channel_id
                )
            except NotFoundError as e:
                raise ChannelNotFoundError(
                    "Channel not found.", channel_id=channel_id
                ) from e
            await session.commit()
        logger.debug("Channel updated.", extra=log_params)

    @handle_db_errors("delete channels")
    async def delete_channels(self, channel_ids: Sequence[int]) -> list[Video]:
        """Delete channels and all their videos in one transaction.

        Args:
            channel_ids: Store ids of the channels to delete. Unknown ids are
                ignored.

        Returns:
            The videos that were deleted along with the channels.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        if not channel_ids:
            return []
        async with self._db.session() as session:
            videos_stmt = select(Video).where(col(Video.channel_id).in_(channel_ids))
            deleted_videos = list((await session.execute(videos_stmt)).scalars().all())
            await session.execute(
                delete(Video).where(col(Video.channel_id).in_(channel_ids))
            )
            await session.execute(
                delete(Channel).where(col(Channel.id).in_(channel_ids))
            )
            await session.commit()
        logger.info(
            "Channels deleted.",
            extra={
                "channel_ids": list(channel_ids),
                "deleted_videos": len(deleted_videos),
            },
        )
        return deleted_videos

    @handle_db_errors("replace library")
    async def replace_all(
        self, library: Sequence[tuple[Channel, Sequence[Video]]]
    ) -> tuple[list[Video], list[Video]]:
        """Replace every channel and video with the given ones in one transaction.

        Args:
            library: Channels paired with their videos. Ids are assigned by the
                store; each video's channel_id is set to its new channel.

        Returns:
            Tuple of (removed videos, inserted videos).

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            removed = list((await session.execute(select(Video))).scalars().all())
            await session.execute(delete(Video))
            await session.execute(delete(Channel))

            inserted: list[Video] = []
            for channel, videos in library:
                session.add(channel)
                await session.flush()
                for video in videos:
                    video.channel_id = channel.id  # type: ignore[assignment]
                    session.add(video)
                    inserted.append(video)
            await session.commit()

        logger.info(
            "Library replaced.",
            extra={
                "removed_videos": len(removed),
                "channels": len(library),
                "videos": len(inserted),
            },
        )
        return removed, inserted
