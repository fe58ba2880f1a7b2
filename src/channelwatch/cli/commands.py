"""One-shot commands run on the background worker."""

from collections.abc import Awaitable, Callable
import logging
from pathlib import Path

from ..config import AppSettings, Command
from ..worker import ProgressCallback
from .default import AppComponents, follow_task, init_components, migrate_store

logger = logging.getLogger(__name__)


async def _sync(components: AppComponents) -> None:
    channels = await components.channel_db.get_channels()
    handle = components.worker.start(
        "sync", lambda progress: components.engine.run(channels, progress)
    )
    result = await follow_task(handle)
    for channel in result.not_found:
        logger.warning(
            "Channel feed could not be read.",
            extra={"channel_id": channel.id, "channel_name": channel.name},
        )
    for error in result.duration_errors:
        logger.warning(
            "Duration could not be fetched.",
            extra={"external_id": error.external_id, "title": error.title},
        )
    logger.info("Sync finished.", extra=result.summary_dict())


async def _backfill(components: AppComponents) -> None:
    handle = components.worker.start("backfill", components.backfill.backfill_missing)
    result = await follow_task(handle)
    for error in result.errors:
        logger.warning(
            "Duration could not be fetched.",
            extra={"video_id": error.video_id, "title": error.title},
        )
    logger.info(
        "Backfill finished.",
        extra={"updated": len(result.updated), "errors": len(result.errors)},
    )


async def _library_command(components: AppComponents, settings: AppSettings) -> None:
    library = components.library
    match settings.command:
        case Command.ADD_CHANNEL:
            if not settings.channel_external_id:
                raise ValueError("add-channel requires --channel-external-id.")
            channel = await library.add_channel(
                settings.channel_name or settings.channel_external_id,
                settings.channel_external_id,
            )
            logger.info(
                "Channel tracked.",
                extra={"channel_id": channel.id, "channel_name": channel.name},
            )
        case Command.MARK_WATCHED | Command.MARK_UNWATCHED:
            if not settings.video_ids:
                raise ValueError(f"{settings.command} requires --video-ids.")
            watched = settings.command is Command.MARK_WATCHED
            updated = await library.set_watched(settings.video_ids, watched)
            logger.info(
                "Videos updated.", extra={"watched": watched, "updated": updated}
            )
        case Command.SET_START_TIME:
            if len(settings.video_ids) != 1:
                raise ValueError("set-start-time requires exactly one video id.")
            await library.set_start_time(settings.video_ids[0], settings.start_time)
        case Command.UNWATCHED:
            channel_id: int | None = None
            if settings.channel_external_id:
                tracked = await components.channel_db.get_channel_by_external_id(
                    settings.channel_external_id
                )
                if tracked is None:
                    raise ValueError(
                        f"Unknown channel {settings.channel_external_id!r}."
                    )
                channel_id = tracked.id
            for video in await library.unwatched_videos(channel_id):
                logger.info(
                    "Unwatched video.",
                    extra={
                        "video_id": video.id,
                        "title": video.title,
                        "published": video.published.isoformat(),
                        "url": video.watch_url(settings.video_base_url),
                    },
                )
            logger.info(
                "Unwatched videos counted.",
                extra={"unwatched": await library.count_unwatched(channel_id)},
            )
        case _:
            raise ValueError(f"Not a library command: {settings.command}")


def _transfer_task(
    components: AppComponents, command: Command, file_path: Path
) -> Callable[[ProgressCallback], Awaitable[object]]:
    match command:
        case Command.IMPORT_OPML:
            return lambda progress: components.opml_importer.import_file(
                file_path, progress
            )
        case Command.IMPORT_JSON:
            return lambda progress: components.json_transfer.import_from(
                file_path, progress
            )
        case Command.EXPORT_JSON:
            return lambda _: components.json_transfer.export_to(file_path)
        case _:
            raise ValueError(f"Not a transfer command: {command}")


async def run_command(settings: AppSettings) -> None:
    """Run a one-shot command after bringing the store up to date.

    Args:
        settings: Application settings; ``command`` selects what runs.

    Raises:
        ValueError: If an import or export command has no transfer file, or a
            library command lacks the ids it acts on.
        ChannelWatchError: If the command fails.
    """
    if (
        settings.command
        in (Command.IMPORT_OPML, Command.IMPORT_JSON, Command.EXPORT_JSON)
        and settings.transfer_file is None
    ):
        raise ValueError(f"{settings.command} requires --transfer-file.")

    components = await init_components(settings)
    try:
        applied = await migrate_store(components)
        match settings.command:
            case Command.MIGRATE:
                logger.info("Migration finished.", extra={"applied_steps": applied})
            case Command.SYNC:
                await _sync(components)
            case Command.BACKFILL:
                await _backfill(components)
            case Command.IMPORT_OPML | Command.IMPORT_JSON | Command.EXPORT_JSON:
                file_path: Path = settings.transfer_file  # type: ignore[assignment]
                handle = components.worker.start(
                    str(settings.command),
                    _transfer_task(components, settings.command, file_path),
                )
                await follow_task(handle)
                logger.info(
                    "Transfer finished.",
                    extra={"command": str(settings.command), "file": str(file_path)},
                )
            case (
                Command.ADD_CHANNEL
                | Command.MARK_WATCHED
                | Command.MARK_UNWATCHED
                | Command.SET_START_TIME
                | Command.UNWATCHED
            ):
                handle = components.worker.start(
                    str(settings.command),
                    lambda _: _library_command(components, settings),
                )
                await follow_task(handle)
            case Command.SERVE:
                raise ValueError("serve is not a one-shot command.")
    finally:
        await components.db_core.close()
