"""Export the library to JSON and replace it from a JSON export."""

from collections import defaultdict
from dataclasses import dataclass, field
import logging
from pathlib import Path

import aiofiles
from pydantic import AwareDatetime, BaseModel, Field, ValidationError, model_validator

from ..db import ChannelDatabase, VideoDatabase
from ..db.types import Channel, Video
from ..exceptions import ThumbnailDownloadError, TransferError
from ..file_manager import FileManager
from ..thumbnail_downloader import ThumbnailDownloader
from ..worker.types import ProgressCallback

logger = logging.getLogger(__name__)


class ExportedVideo(BaseModel):
    """One video in a library export.

    Attributes:
        title: Video title.
        external_id: External video identifier.
        published: Publication datetime.
        thumbnail_url: Remote thumbnail URL.
        watched: Whether the user has watched the video.
        duration: Duration in seconds, 0 when unknown.
        start_time: Resume offset in seconds.
    """

    title: str
    external_id: str = Field(min_length=1)
    published: AwareDatetime
    thumbnail_url: str | None = None
    watched: bool = False
    duration: int = Field(default=0, ge=0)
    start_time: int | None = Field(default=None, ge=0)


class ExportedChannel(BaseModel):
    """One channel with its videos in a library export.

    Attributes:
        name: Display name.
        external_id: External channel identifier.
        subscribed: Whether the channel counts towards the unwatched views.
        videos: The channel's videos.
    """

    name: str
    external_id: str = Field(min_length=1)
    subscribed: bool = True
    videos: list[ExportedVideo] = Field(default_factory=list[ExportedVideo])


class LibraryExport(BaseModel):
    """Top-level document of a library export.

    Attributes:
        channels: Every channel of the library.
    """

    channels: list[ExportedChannel] = Field(default_factory=list[ExportedChannel])

    @model_validator(mode="after")
    def unique_video_ids(self) -> "LibraryExport":
        """Reject documents listing the same video twice."""
        seen: set[str] = set()
        for channel in self.channels:
            for video in channel.videos:
                if video.external_id in seen:
                    raise ValueError(f"Duplicate video external id {video.external_id!r}")
                seen.add(video.external_id)
        return self


@dataclass
class JsonImportResult:
    """Outcome of replacing the library from a JSON export.

    Attributes:
        channels: Number of channels imported.
        videos: Videos imported, with their new ids.
        thumbnail_errors: Thumbnails that could not be downloaded again.
    """

    channels: int
    videos: list[Video]
    thumbnail_errors: list[ThumbnailDownloadError] = field(
        default_factory=list[ThumbnailDownloadError]
    )


class JsonTransfer:
    """Write the library to a JSON file and read it back.

    Attributes:
        _channel_db: Database manager for channel records.
        _video_db: Database manager for video records.
        _thumbnail_downloader: Downloads thumbnails of imported videos.
        _file_manager: Deletes thumbnails of replaced videos.
    """

    def __init__(
        self,
        channel_db: ChannelDatabase,
        video_db: VideoDatabase,
        thumbnail_downloader: ThumbnailDownloader,
        file_manager: FileManager,
    ):
        self._channel_db = channel_db
        self._video_db = video_db
        self._thumbnail_downloader = thumbnail_downloader
        self._file_manager = file_manager

    async def export_to(self, file_path: Path) -> LibraryExport:
        """Write every channel and video to ``file_path``.

        Returns:
            The exported document.

        Raises:
            TransferError: If the file cannot be written.
            DatabaseOperationError: If the store cannot be read.
        """
        channels = await self._channel_db.get_channels()
        videos_by_channel: defaultdict[int, list[Video]] = defaultdict(list)
        for video in await self._video_db.get_videos():
            videos_by_channel[video.channel_id].append(video)

        document = LibraryExport(
            channels=[
                ExportedChannel(
                    name=channel.name,
                    external_id=channel.external_id,
                    subscribed=channel.subscribed,
                    videos=[
                        ExportedVideo.model_validate(video, from_attributes=True)
                        for video in videos_by_channel[channel.id]  # type: ignore[index]
                    ],
                )
                for channel in channels
            ]
        )
        try:
            async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
                await f.write(document.model_dump_json(indent=2))
        except OSError as e:
            raise TransferError(
                "Failed to write JSON export.", file_path=str(file_path)
            ) from e

        logger.info(
            "Library exported.",
            extra={"file_path": str(file_path), "channels": len(channels)},
        )
        return document

    async def _read(self, file_path: Path) -> LibraryExport:
        try:
            async with aiofiles.open(file_path, encoding="utf-8") as f:
                content = await f.read()
            return LibraryExport.model_validate_json(content)
        except (OSError, ValidationError) as e:
            raise TransferError(
                "Failed to read JSON export.", file_path=str(file_path)
            ) from e

    async def import_from(
        self, file_path: Path, progress: ProgressCallback | None = None
    ) -> JsonImportResult:
        """Replace the whole library with the content of a JSON export.

        The file is validated before the store is touched. Channels and
        videos are replaced in one transaction; afterwards the thumbnails of
        the old videos are deleted and those of the new ones downloaded.

        Args:
            file_path: A file written by ``export_to``.
            progress: Optional callback receiving (fraction done, message).

        Returns:
            What was imported.

        Raises:
            TransferError: If the file cannot be read or is invalid.
            DatabaseOperationError: If the store cannot be replaced.
        """
        if progress:
            progress(0.0, f"Reading {file_path}...")
        document = await self._read(file_path)

        library = [
            (
                Channel(
                    name=exported.name,
                    external_id=exported.external_id,
                    subscribed=exported.subscribed,
                ),
                [
                    Video(channel_id=0, **video.model_dump())
                    for video in exported.videos
                ],
            )
            for exported in document.channels
        ]
        if progress:
            progress(0.3, "Replacing library...")
        removed, inserted = await self._channel_db.replace_all(library)

        await self._file_manager.delete_thumbnails(
            video.thumbnail_file for video in removed
        )
        if progress:
            progress(0.6, "Downloading thumbnails...")
        stored, errors = await self._thumbnail_downloader.download_for_videos(inserted)
        await self._video_db.set_thumbnail_files(stored)
        for video in inserted:
            if video.id in stored:
                video.thumbnail_file = stored[video.id]
        if progress:
            progress(1.0, "Import finished.")

        logger.info(
            "Library imported.",
            extra={
                "file_path": str(file_path),
                "channels": len(library),
                "videos": len(inserted),
                "thumbnail_errors": len(errors),
            },
        )
        return JsonImportResult(
            channels=len(library), videos=inserted, thumbnail_errors=errors
        )
