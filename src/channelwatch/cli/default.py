"""Component wiring shared by all commands, and the long-running serve mode.

Every command builds the components, brings the store up to date through
the migration pipeline, and only then touches channels or videos.
"""

import asyncio
from dataclasses import dataclass
import logging
import signal

from ..config import AppSettings
from ..db import ChannelDatabase, SettingsDatabase, VideoDatabase
from ..db.sqlalchemy_core import SqlalchemyCore
from ..feed import FeedFetcher
from ..file_manager import FileManager
from ..library import Library
from ..migrations import LATEST_SCHEMA_VERSION, Failed, SchemaMigrationPipeline
from ..path_manager import PathManager
from ..schedule import SyncScheduler
from ..sync import DurationBackfill, DurationLookup, ReconciliationEngine
from ..thumbnail_downloader import ThumbnailDownloader
from ..transfer import JsonTransfer, OpmlImporter
from ..worker import BackgroundWorker, TaskHandle

logger = logging.getLogger(__name__)


@dataclass
class AppComponents:
    """Every long-lived component of the application."""

    paths: PathManager
    db_core: SqlalchemyCore
    settings_db: SettingsDatabase
    channel_db: ChannelDatabase
    video_db: VideoDatabase
    file_manager: FileManager
    worker: BackgroundWorker
    pipeline: SchemaMigrationPipeline
    engine: ReconciliationEngine
    backfill: DurationBackfill
    library: Library
    opml_importer: OpmlImporter
    json_transfer: JsonTransfer


async def init_components(settings: AppSettings) -> AppComponents:
    """Create the store and wire all components.

    Raises:
        FileOperationError: If the data directories cannot be created.
        DatabaseOperationError: If the store cannot be initialized.
    """
    paths = PathManager(base_data_dir=settings.data_dir)
    db_dir = await paths.db_dir()
    logger.debug("Initializing database components.", extra={"db_dir": str(db_dir)})

    db_core = SqlalchemyCore(db_dir)
    await db_core.initialize(LATEST_SCHEMA_VERSION)

    settings_db = SettingsDatabase(db_core)
    channel_db = ChannelDatabase(db_core)
    video_db = VideoDatabase(db_core)
    file_manager = FileManager(paths)
    thumbnail_downloader = ThumbnailDownloader(paths)
    duration_lookup = DurationLookup(
        api_key=settings.duration_api_key, api_url=settings.duration_api_url
    )
    if not duration_lookup.enabled:
        logger.info("No duration API key configured, durations stay unknown.")

    return AppComponents(
        paths=paths,
        db_core=db_core,
        settings_db=settings_db,
        channel_db=channel_db,
        video_db=video_db,
        file_manager=file_manager,
        worker=BackgroundWorker(),
        pipeline=SchemaMigrationPipeline(db_core, settings_db),
        engine=ReconciliationEngine(
            feed_fetcher=FeedFetcher(settings.feed_base_url),
            video_db=video_db,
            duration_lookup=duration_lookup,
            thumbnail_downloader=thumbnail_downloader,
            file_manager=file_manager,
        ),
        backfill=DurationBackfill(video_db, duration_lookup),
        library=Library(channel_db, video_db, file_manager),
        opml_importer=OpmlImporter(channel_db),
        json_transfer=JsonTransfer(
            channel_db, video_db, thumbnail_downloader, file_manager
        ),
    )


async def follow_task[T](handle: TaskHandle[T]) -> T:
    """Log the progress of a worker task and return its result.

    Raises:
        Exception: Whatever the task raised.
    """
    async for event in handle.events():
        logger.info(
            "Task progress.",
            extra={
                "task_name": handle.name,
                "percent": round(event.fraction * 100),
                "step": event.message,
            },
        )
    return await handle.wait()


async def migrate_store(components: AppComponents) -> int:
    """Apply every pending migration step.

    Returns:
        Number of steps applied.

    Raises:
        MigrationStepError: If a step fails; earlier steps stay applied.
        DatabaseOperationError: If the store cannot be inspected.
    """
    queue = await components.pipeline.plan()
    if not queue.pending:
        logger.debug("Store layout is up to date.")
        return 0

    handle = components.worker.start(
        "migrate",
        lambda progress: components.pipeline.run_all(queue, progress),
    )
    outcome = await follow_task(handle)
    if isinstance(outcome, Failed):
        raise outcome.error
    logger.info(
        "Store migrated.",
        extra={"applied_versions": [s.target_version for s in queue.completed]},
    )
    return len(queue.completed)


async def graceful_shutdown(
    scheduler: SyncScheduler | None,
    db_core: SqlalchemyCore | None,
) -> None:
    """Stop the scheduler, then close the store.

    Args:
        scheduler: The sync scheduler to stop.
        db_core: The database core to close.
    """
    logger.info("Shutting down.")
    if scheduler:
        try:
            await scheduler.stop(wait_for_jobs=True)
        except Exception as e:
            logger.error("Error shutting down scheduler.", exc_info=e)
    if db_core:
        try:
            await db_core.close()
            logger.info("Database connections closed.")
        except Exception as e:
            logger.error("Error closing database connections.", exc_info=e)
    logger.info("channelwatch shutdown completed.")


async def serve(settings: AppSettings) -> None:
    """Migrate the store, then reconcile all channels on schedule until stopped.

    Args:
        settings: Application settings object containing configuration.
    """
    db_core: SqlalchemyCore | None = None
    scheduler: SyncScheduler | None = None
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        components = await init_components(settings)
        db_core = components.db_core
        await migrate_store(components)

        scheduler = SyncScheduler(
            schedule=settings.sync_cron,
            worker=components.worker,
            engine=components.engine,
            channel_db=components.channel_db,
        )
        await scheduler.start()
        logger.info(
            "Serving scheduled syncs.",
            extra={"schedule": settings.sync_schedule, "jobs": scheduler.get_job_ids()},
        )
        await stop.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await graceful_shutdown(scheduler, db_core)
