"""Application configuration management for channelwatch.

Settings are read, in order of precedence, from init arguments, environment
variables and CLI flags, then from an optional YAML file named by the
``config_file`` field.
"""

from enum import StrEnum
import logging
from pathlib import Path
from typing import Any, Literal, cast

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
import yaml

from ..exceptions import ConfigLoadError
from .types import CronExpression

logger = logging.getLogger(__name__)

YOUTUBE_FEED_BASE_URL = "https://www.youtube.com/feeds/videos.xml?channel_id="
YOUTUBE_VIDEO_BASE_URL = "https://www.youtube.com/watch?v="
YOUTUBE_VIDEOS_API_URL = "https://www.googleapis.com/youtube/v3/videos"


class Command(StrEnum):
    """Operations the command line can run.

    ``serve`` runs pending migrations, then reconciles all channels on the
    configured schedule until interrupted. The other commands run once.
    """

    SERVE = "serve"
    MIGRATE = "migrate"
    SYNC = "sync"
    BACKFILL = "backfill"
    IMPORT_OPML = "import-opml"
    IMPORT_JSON = "import-json"
    EXPORT_JSON = "export-json"
    ADD_CHANNEL = "add-channel"
    MARK_WATCHED = "mark-watched"
    MARK_UNWATCHED = "mark-unwatched"
    SET_START_TIME = "set-start-time"
    UNWATCHED = "unwatched"


class YamlFileFromFieldSource(PydanticBaseSettingsSource):
    """Load configuration from a YAML file named by the ``config_file`` field.

    Must run after every source that may populate ``config_file``.

    Attributes:
        yaml_file_encoding: Encoding to use when reading the YAML file.
        yaml_data: Data loaded from the file.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file_encoding: str | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file_encoding = yaml_file_encoding or "utf-8"
        self.yaml_data: dict[str, Any] = {}

    def _get_current_state_of(self, field_name: str) -> Any:
        value = self.current_state.get(field_name)
        if value not in (None, PydanticUndefined):
            return value

        field_info = self.settings_cls.model_fields[field_name]
        if isinstance(field_info.validation_alias, str):
            value = self.current_state.get(field_info.validation_alias)
            if value not in (None, PydanticUndefined):
                return value
        return field_info.get_default()

    def _get_yaml_path(self) -> Path | None:
        match self._get_current_state_of("config_file"):
            case None:
                return None
            case Path() as path:
                return path.expanduser()
            case str() as path_str:
                return Path(path_str).expanduser()
            case other:
                raise TypeError(
                    f"Field 'config_file' must resolve to a Path or string, "
                    f"received type '{type(other).__name__}'"
                )

    def _read_yaml_file(self, file_path: Path) -> dict[str, Any]:
        logger.debug(
            "Reading YAML configuration file.", extra={"file_path": str(file_path)}
        )
        with Path.open(file_path, encoding=self.yaml_file_encoding) as f:
            loaded_yaml = yaml.safe_load(f)

        match loaded_yaml:
            case dict():
                return cast(dict[str, Any], loaded_yaml)
            case None:
                logger.info(
                    "YAML configuration file is empty.",
                    extra={"file_path": str(file_path)},
                )
                return {}
            case _:
                raise TypeError(
                    f"Invalid YAML config format: expected dict, got {type(loaded_yaml).__name__}"
                )

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value from loaded YAML data."""
        field_value = self.yaml_data.get(field_name)
        return field_value, field_name, self.field_is_complex(field)

    def __call__(self) -> dict[str, Any]:
        """Load YAML data from the file named in the config_file field."""
        try:
            yaml_path = self._get_yaml_path()
        except TypeError as e:
            raise ConfigLoadError(
                "Failed to resolve YAML configuration file path.",
            ) from e

        if yaml_path is None:
            logger.debug("No YAML configuration file specified; skipping YAML loading.")
            self.yaml_data = {}
            return {}

        try:
            self.yaml_data = self._read_yaml_file(yaml_path)
        except (TypeError, OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(
                "Failed to load or parse YAML configuration file.",
                config_file=str(yaml_path),
            ) from e
        return self.yaml_data.copy()


class AppSettings(BaseSettings):
    """Application settings.

    Attributes:
        command: Operation to run (see ``Command``).
        transfer_file: File read or written by the import/export commands.
        channel_external_id: Channel targeted by add-channel and unwatched.
        channel_name: Display name used by add-channel.
        video_ids: Videos targeted by the mark and start time commands.
        start_time: Resume offset in seconds for set-start-time; unset clears it.
        log_format: Format for application logs (human or json).
        log_level: Logging level for the application.
        log_include_stacktrace: Include full stack traces in error logs.
        data_dir: Root directory for the database and thumbnails.
        config_file: Optional path to a YAML config file.
        feed_base_url: Prefix joined with a channel's external id to get its feed.
        video_base_url: Prefix joined with a video's external id to get its watch URL.
        duration_api_key: Credential for the duration lookup; lookups are
            skipped when unset.
        duration_api_url: Endpoint of the duration lookup.
        sync_schedule: Cron schedule for periodic reconciliation in serve mode.
    """

    command: Command = Field(
        default=Command.SERVE,
        validation_alias="COMMAND",
        description="Operation to run; one of the Command values, e.g. serve, sync or add-channel.",
    )
    transfer_file: Path | None = Field(
        default=None,
        validation_alias="TRANSFER_FILE",
        description="File read by import-opml/import-json or written by export-json.",
    )
    channel_external_id: str | None = Field(
        default=None,
        validation_alias="CHANNEL_EXTERNAL_ID",
        description="External channel id for add-channel, or to limit unwatched to one channel.",
    )
    channel_name: str | None = Field(
        default=None,
        validation_alias="CHANNEL_NAME",
        description="Display name for add-channel; defaults to the external id.",
    )
    video_ids: list[int] = Field(
        default_factory=list[int],
        validation_alias="VIDEO_IDS",
        description="Video ids for mark-watched, mark-unwatched and set-start-time.",
    )
    start_time: int | None = Field(
        default=None,
        validation_alias="START_TIME",
        description="Resume offset in seconds for set-start-time; omit to clear it.",
    )
    log_format: Literal["human", "json"] = Field(
        default="human",
        validation_alias="LOG_FORMAT",
        description="Format for application logs ('human' or 'json').",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level for the application (e.g., DEBUG, INFO, WARNING). Case-insensitive.",
    )
    log_include_stacktrace: bool = Field(
        default=False,
        validation_alias="LOG_INCLUDE_STACKTRACE",
        description="Include full stack traces in error logs (true/false).",
    )
    data_dir: Path = Field(
        default=Path("~/.local/share/channelwatch").expanduser(),
        validation_alias="DATA_DIR",
        description="Root directory for the database and thumbnails.",
    )
    config_file: Path | None = Field(
        default=None,
        validation_alias="CONFIG_FILE",
        description="Optional path to a YAML config file.",
    )

    feed_base_url: str = Field(
        default=YOUTUBE_FEED_BASE_URL,
        validation_alias="FEED_BASE_URL",
        description="Prefix joined with a channel's external id to build its feed URL.",
    )
    video_base_url: str = Field(
        default=YOUTUBE_VIDEO_BASE_URL,
        validation_alias="VIDEO_BASE_URL",
        description="Prefix joined with a video's external id to build its watch URL.",
    )
    duration_api_key: str | None = Field(
        default=None,
        validation_alias="DURATION_API_KEY",
        description="YouTube Data API key. Video durations are not looked up when unset.",
    )
    duration_api_url: str = Field(
        default=YOUTUBE_VIDEOS_API_URL,
        validation_alias="DURATION_API_URL",
        description="YouTube Data API videos endpoint used for duration lookups.",
    )
    sync_schedule: str = Field(
        default="0 * * * *",
        validation_alias="SYNC_SCHEDULE",
        description="Cron schedule for reconciling all channels in serve mode.",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        yaml_file_encoding="utf-8",
        cli_parse_args=True,
        cli_ignore_unknown_args=True,
        cli_kebab_case=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("duration_api_key", mode="before")
    @classmethod
    def blank_key_is_unset(cls, v: Any) -> Any:
        """Treat an empty credential as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("sync_schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        """Check that the sync schedule is a valid cron expression.

        Args:
            v: Cron expression string.

        Returns:
            The stripped cron expression.

        Raises:
            ValueError: If the expression is empty or invalid.
        """
        stripped = v.strip()
        if not stripped:
            raise ValueError("sync_schedule cannot be empty")
        CronExpression(stripped)
        return stripped

    @property
    def sync_cron(self) -> CronExpression:
        """Return the sync schedule as a CronExpression."""
        return CronExpression(self.sync_schedule)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Read the YAML file after the sources that can name it."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlFileFromFieldSource(settings_cls=settings_cls),
            file_secret_settings,
        )
