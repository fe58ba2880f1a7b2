"""Helpers for resolving file system paths."""

import logging
from pathlib import Path
import uuid

import aiofiles.os

from .exceptions import FileOperationError

logger = logging.getLogger(__name__)


class PathManager:
    """Single source of truth for where channelwatch keeps its files.

    Layout under the data directory::

        db/           the SQLite store
        thumbnails/   one image per video, named by the video's thumbnail_file
        tmp/          partially downloaded files

    Attributes:
        _base_data_dir: Root directory for all application data.
    """

    def __init__(self, base_data_dir: Path):
        self._base_data_dir = Path(base_data_dir).expanduser().resolve()

    @property
    def base_data_dir(self) -> Path:
        """Return the root data directory."""
        return self._base_data_dir

    @property
    def base_thumbnails_dir(self) -> Path:
        """Return the directory holding video thumbnails."""
        return self._base_data_dir / "thumbnails"

    @property
    def base_tmp_dir(self) -> Path:
        """Return the directory used for temporary downloads."""
        return self._base_data_dir / "tmp"

    async def _ensure_dir(self, path: Path, description: str) -> Path:
        try:
            await aiofiles.os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise FileOperationError(
                f"Failed to create {description} directory.",
                file_name=str(path),
            ) from e
        return path

    async def db_dir(self) -> Path:
        """Return the directory containing the database file, creating it.

        Raises:
            FileOperationError: If the directory cannot be created.
        """
        return await self._ensure_dir(self._base_data_dir / "db", "database")

    async def thumbnails_dir(self) -> Path:
        """Return the thumbnails directory, creating it.

        Raises:
            FileOperationError: If the directory cannot be created.
        """
        return await self._ensure_dir(self.base_thumbnails_dir, "thumbnails")

    def thumbnail_file_name(self, video_id: int) -> str:
        """Return the file name a video's thumbnail is stored under."""
        return f"{video_id}.jpg"

    async def thumbnail_path(self, file_name: str) -> Path:
        """Return the full path of a stored thumbnail.

        Args:
            file_name: Plain file name inside the thumbnails directory.

        Raises:
            ValueError: If the file name is empty or contains path separators.
            FileOperationError: If the directory cannot be created.
        """
        if not file_name.strip() or Path(file_name).name != file_name:
            raise ValueError(f"Invalid thumbnail file name: {file_name!r}")
        return await self.thumbnails_dir() / file_name

    async def tmp_file(self, prefix: str) -> Path:
        """Return a unique path inside the temporary directory.

        Raises:
            FileOperationError: If the directory cannot be created.
        """
        tmp_dir = await self._ensure_dir(self.base_tmp_dir, "temporary")
        return tmp_dir / f"{prefix}-{uuid.uuid4().hex}.part"
