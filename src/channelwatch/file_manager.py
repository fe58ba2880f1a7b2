"""File system management for stored thumbnails."""

from collections.abc import Iterable
import logging

import aiofiles.os

from .exceptions import FileOperationError
from .path_manager import PathManager

logger = logging.getLogger(__name__)


class FileManager:
    """Delete and inspect stored thumbnail files.

    Attributes:
        _paths: PathManager instance for resolving file paths.
    """

    def __init__(self, paths: PathManager):
        self._paths = paths

    async def thumbnail_exists(self, file_name: str) -> bool:
        """Return True if a thumbnail file with this name is stored."""
        try:
            path = await self._paths.thumbnail_path(file_name)
        except ValueError:
            return False
        return await aiofiles.os.path.isfile(path)

    async def delete_thumbnail(self, file_name: str) -> None:
        """Delete a stored thumbnail.

        Args:
            file_name: File name inside the thumbnails directory.

        Raises:
            FileNotFoundError: If the file does not exist.
            FileOperationError: If the name is invalid or the OS refuses the delete.
        """
        try:
            path = await self._paths.thumbnail_path(file_name)
        except ValueError as e:
            raise FileOperationError(
                "Invalid thumbnail file name.", file_name=file_name
            ) from e

        if not await aiofiles.os.path.isfile(path):
            raise FileNotFoundError(f"Thumbnail file not found: {path}")
        try:
            await aiofiles.os.remove(path)
        except OSError as e:
            raise FileOperationError(
                "Failed to delete thumbnail file.", file_name=file_name
            ) from e
        logger.debug("Thumbnail file deleted.", extra={"file_path": str(path)})

    async def delete_thumbnails(
        self, file_names: Iterable[str | None]
    ) -> list[FileOperationError]:
        """Delete several thumbnails, tolerating files that are already gone.

        Args:
            file_names: File names to delete; None entries are skipped.

        Returns:
            Errors for the files that could not be deleted.
        """
        errors: list[FileOperationError] = []
        for file_name in file_names:
            if file_name is None:
                continue
            try:
                await self.delete_thumbnail(file_name)
            except FileNotFoundError:
                logger.debug(
                    "Thumbnail file already absent.", extra={"file_name": file_name}
                )
            except FileOperationError as e:
                logger.warning("Could not delete thumbnail file.", exc_info=e)
                errors.append(e)
        return errors
