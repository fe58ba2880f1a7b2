"""Custom exceptions for the channelwatch application.

This module defines all custom exception classes used throughout the
application, organized by functional area and providing structured
error information for better debugging and error handling.
"""


class ChannelWatchError(Exception):
    """Base class for application-specific errors."""


class ConfigLoadError(ChannelWatchError):
    """Raised when a configuration file fails to load.

    Attributes:
        config_file: Path to the configuration file that failed to load.
    """

    def __init__(
        self,
        message: str,
        config_file: str | None = None,
    ):
        super().__init__(message)
        self.config_file = config_file


# --- Store ---


class DatabaseOperationError(ChannelWatchError):
    """Raised when the store cannot complete an operation.

    Treated as fatal: callers do not retry and let it propagate.

    Attributes:
        channel_id: The channel identifier associated with the error.
        video_id: The video identifier associated with the error.
    """

    def __init__(
        self,
        message: str,
        channel_id: int | str | None = None,
        video_id: int | str | None = None,
    ):
        super().__init__(message)
        self.channel_id = channel_id
        self.video_id = video_id


class NotFoundError(ChannelWatchError):
    """Raised when an expected row does not exist."""


class ChannelNotFoundError(NotFoundError):
    """Raised when a channel is not found.

    Attributes:
        channel_id: The channel identifier associated with the error.
    """

    def __init__(self, message: str, channel_id: int | str | None = None):
        super().__init__(message)
        self.channel_id = channel_id


class VideoNotFoundError(NotFoundError):
    """Raised when a video is not found.

    Attributes:
        video_id: The video identifier associated with the error.
    """

    def __init__(self, message: str, video_id: int | str | None = None):
        super().__init__(message)
        self.video_id = video_id


class FileOperationError(ChannelWatchError):
    """Raised when a file system operation fails.

    Attributes:
        file_name: The file name associated with the error.
    """

    def __init__(self, message: str, file_name: str | None = None):
        super().__init__(message)
        self.file_name = file_name


# --- Remote collaborators ---


class ChannelUnreachableError(ChannelWatchError):
    """Raised when a channel feed cannot be fetched or parsed.

    Attributes:
        channel_id: The channel identifier associated with the error.
        external_id: The channel's external feed identifier.
        url: The feed URL that was requested.
    """

    def __init__(
        self,
        message: str,
        channel_id: int | None = None,
        external_id: str | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.channel_id = channel_id
        self.external_id = external_id
        self.url = url


class DurationLookupError(ChannelWatchError):
    """Raised when the duration of a video cannot be looked up.

    Attributes:
        video_id: The store identifier of the video, when known.
        external_id: The external video identifier.
        title: The video title, for user-facing summaries.
    """

    def __init__(
        self,
        message: str,
        video_id: int | None = None,
        external_id: str | None = None,
        title: str | None = None,
    ):
        super().__init__(message)
        self.video_id = video_id
        self.external_id = external_id
        self.title = title


class ThumbnailDownloadError(ChannelWatchError):
    """Raised when a thumbnail cannot be downloaded or stored.

    Attributes:
        video_id: The video identifier associated with the error.
        url: The thumbnail URL associated with the error.
    """

    def __init__(
        self,
        message: str,
        video_id: int | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.video_id = video_id
        self.url = url


# --- Migrations ---


class MigrationStepError(ChannelWatchError):
    """Raised when a schema migration step fails to apply.

    Halts the remaining migration queue. Steps committed before the
    failing one stay committed.

    Attributes:
        target_version: The schema version the failing step would have reached.
        description: Human readable description of the failing step.
    """

    def __init__(
        self,
        message: str,
        target_version: int | None = None,
        description: str | None = None,
    ):
        super().__init__(message)
        self.target_version = target_version
        self.description = description


# --- Background work ---


class WorkerBusyError(ChannelWatchError):
    """Raised when a task is started while another one is still running.

    Attributes:
        task_name: Name of the task that was rejected.
        active_task: Name of the task currently running.
    """

    def __init__(
        self,
        message: str,
        task_name: str | None = None,
        active_task: str | None = None,
    ):
        super().__init__(message)
        self.task_name = task_name
        self.active_task = active_task


class TransferError(ChannelWatchError):
    """Raised when an import or export file cannot be read or written.

    Attributes:
        file_path: The path of the file being transferred.
    """

    def __init__(self, message: str, file_path: str | None = None):
        super().__init__(message)
        self.file_path = file_path
