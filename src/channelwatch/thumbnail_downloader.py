"""Thumbnail downloading for videos."""

from collections.abc import Iterable
import logging
from pathlib import Path

import aiofiles
import aiofiles.os
import httpx

from .db.types import Video
from .exceptions import FileOperationError, ThumbnailDownloadError
from .path_manager import PathManager

logger = logging.getLogger(__name__)


class ThumbnailDownloader:
    """Download thumbnail images into the thumbnails directory.

    Images are written to a temporary file first and moved into place, so a
    failed download never leaves a truncated thumbnail behind.

    Attributes:
        _paths: PathManager instance for resolving file paths.
    """

    def __init__(self, paths: PathManager):
        self._paths = paths

    async def download(self, source_url: str, dest_path: Path) -> None:
        """Download one image to ``dest_path``.

        Args:
            source_url: Remote image URL.
            dest_path: Final location of the image.

        Raises:
            ThumbnailDownloadError: If the image cannot be fetched or written.
        """
        log_params = {"url": source_url, "dest_path": str(dest_path)}
        logger.debug("Downloading thumbnail.", extra=log_params)
        try:
            tmp_path = await self._paths.tmp_file("thumbnail")
        except FileOperationError as e:
            raise ThumbnailDownloadError(
                "Failed to prepare temporary file for thumbnail.", url=source_url
            ) from e

        async with httpx.AsyncClient(follow_redirects=True) as client:
            try:
                response = await client.get(source_url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise ThumbnailDownloadError(
                    "HTTP request failed for thumbnail download.", url=source_url
                ) from e

        try:
            async with aiofiles.open(tmp_path, "wb") as file:
                await file.write(response.content)
            await aiofiles.os.replace(tmp_path, dest_path)
        except OSError as e:
            raise ThumbnailDownloadError(
                "Failed to store thumbnail file.", url=source_url
            ) from e
        finally:
            if await aiofiles.os.path.exists(tmp_path):
                try:
                    await aiofiles.os.remove(tmp_path)
                except OSError:
                    logger.warning(
                        "Failed to clean up temporary thumbnail file.",
                        extra={"tmp_path": str(tmp_path)},
                    )
        logger.debug("Thumbnail stored.", extra=log_params)

    async def download_for_videos(
        self, videos: Iterable[Video]
    ) -> tuple[dict[int, str], list[ThumbnailDownloadError]]:
        """Download the thumbnails of stored videos that have a remote URL.

        Args:
            videos: Videos with store ids assigned.

        Returns:
            Tuple of (video id to stored file name, errors of failed downloads).
        """
        stored: dict[int, str] = {}
        errors: list[ThumbnailDownloadError] = []
        for video in videos:
            if video.id is None or not video.thumbnail_url:
                continue
            file_name = self._paths.thumbnail_file_name(video.id)
            try:
                dest_path = await self._paths.thumbnail_path(file_name)
                await self.download(video.thumbnail_url, dest_path)
            except (ThumbnailDownloadError, FileOperationError) as e:
                error = (
                    e
                    if isinstance(e, ThumbnailDownloadError)
                    else ThumbnailDownloadError(
                        "Thumbnails directory unavailable.", url=video.thumbnail_url
                    )
                )
                error.video_id = video.id
                logger.warning("Thumbnail download failed.", exc_info=error)
                errors.append(error)
                continue
            stored[video.id] = file_name
        return stored, errors
