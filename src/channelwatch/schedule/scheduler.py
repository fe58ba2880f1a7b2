"""Scheduled reconciliation of every channel.

A cron job submits a reconciliation run to the background worker. When the
worker is still busy with another task, that occurrence is skipped rather
than queued.
"""

import asyncio
from datetime import datetime
import logging

from apscheduler.events import (  # type: ignore
    EVENT_JOB_ERROR,  # type: ignore
    EVENT_JOB_EXECUTED,  # type: ignore
    EVENT_JOB_MISSED,  # type: ignore
    JobExecutionEvent,  # type: ignore
)
from apscheduler.executors.asyncio import AsyncIOExecutor  # type: ignore
from apscheduler.jobstores.memory import MemoryJobStore  # type: ignore
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore

from ..config.types import CronExpression
from ..db import ChannelDatabase
from ..exceptions import WorkerBusyError
from ..sync import ReconciliationEngine, RunResult
from ..worker import BackgroundWorker, ProgressCallback

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_all_channels"
SYNC_TASK_NAME = "scheduled-sync"
MISFIRE_GRACE_SECONDS = 300


def _trigger_from_cron_expression(expr: CronExpression) -> CronTrigger:  # type: ignore
    return CronTrigger(  # type: ignore
        minute=expr.minute,
        hour=expr.hour,
        day=expr.day,
        month=expr.month,
        day_of_week=expr.day_of_week,
        second=expr.second,
        timezone="UTC",
    )


class SyncScheduler:
    """Run reconciliation of all channels on a cron schedule.

    The sync job never overlaps itself and missed occurrences are merged
    into one run.

    Attributes:
        _scheduler: In-memory AsyncIOScheduler holding the sync job.
        _worker: Worker the runs are submitted to.
        _engine: Reconciliation engine.
        _channel_db: Source of the channels to reconcile.
    """

    def __init__(
        self,
        schedule: CronExpression,
        worker: BackgroundWorker,
        engine: ReconciliationEngine,
        channel_db: ChannelDatabase,
    ):
        self._worker = worker
        self._engine = engine
        self._channel_db = channel_db
        self._scheduler = AsyncIOScheduler(  # type: ignore
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            timezone="UTC",
        )
        self._scheduler.add_job(  # type: ignore
            self.sync_all,
            trigger=_trigger_from_cron_expression(schedule),
            id=SYNC_JOB_ID,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
            replace_existing=True,
        )
        self._scheduler.add_listener(  # type: ignore
            self._on_job_event,  # type: ignore
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )
        logger.debug("SyncScheduler initialized.", extra={"schedule": str(schedule)})

    async def _reconcile_all(self, progress: ProgressCallback) -> RunResult:
        channels = await self._channel_db.get_channels()
        return await self._engine.run(channels, progress)

    async def sync_all(self) -> RunResult | None:
        """Reconcile all channels on the worker and wait for the result.

        Returns:
            The run result, or None if the worker was busy and the run skipped.

        Raises:
            DatabaseOperationError: If the store fails during the run.
        """
        try:
            handle = self._worker.start(SYNC_TASK_NAME, self._reconcile_all)
        except WorkerBusyError as e:
            logger.info(
                "Worker busy, skipping scheduled sync.",
                extra={"active_task": e.active_task},
            )
            return None
        return await handle.wait()

    async def start(self) -> None:
        """Start the scheduler."""
        self._scheduler.start()  # type: ignore
        logger.info("Sync scheduler started.")

    async def stop(self, wait_for_jobs: bool = True) -> None:
        """Stop the scheduler gracefully.

        Args:
            wait_for_jobs: Whether to wait for running jobs to complete.
        """
        if not self._scheduler.running:  # type: ignore
            logger.debug("Scheduler is not running, nothing to stop.")
            return
        self._scheduler.shutdown(wait=wait_for_jobs)  # type: ignore
        # shutdown is handed to the event loop; let it run before returning
        await asyncio.sleep(0)
        logger.info("Sync scheduler stopped.")

    @property
    def running(self) -> bool:
        """Return True if the scheduler is running."""
        return self._scheduler.running  # type: ignore

    def get_job_ids(self) -> list[str]:
        """Return the ids of the scheduled jobs."""
        return [job.id for job in self._scheduler.get_jobs()]  # type: ignore

    def _on_job_event(self, event: JobExecutionEvent) -> None:  # type: ignore
        """Route a sync job event to the matching log callback."""
        match event.code:  # type: ignore
            case code if code == EVENT_JOB_ERROR:
                self._job_failed_callback(
                    event.job_id,  # type: ignore
                    event.scheduled_run_time,  # type: ignore
                    event.exception,  # type: ignore
                )
            case code if code == EVENT_JOB_MISSED:
                self._job_missed_callback(
                    event.job_id,  # type: ignore
                    event.scheduled_run_time,  # type: ignore
                )
            case _ if isinstance(event.retval, RunResult):  # type: ignore
                self._job_completed_callback(
                    event.job_id,  # type: ignore
                    event.scheduled_run_time,  # type: ignore
                    event.retval,  # type: ignore
                )
            case _:
                # skipped because the worker was busy
                pass

    @staticmethod
    def _job_completed_callback(
        job_id: str, scheduled_run_time: datetime, retval: RunResult
    ) -> None:
        log_params = {
            "job_id": job_id,
            "scheduled_run_time": scheduled_run_time.isoformat(),
            **retval.summary_dict(),
        }
        if retval.has_errors:
            logger.warning("Scheduled sync completed with errors.", extra=log_params)
        else:
            logger.info("Scheduled sync completed.", extra=log_params)

    @staticmethod
    def _job_failed_callback(
        job_id: str, scheduled_run_time: datetime, exception: BaseException
    ) -> None:
        logger.error(
            "Scheduled sync failed.",
            extra={
                "job_id": job_id,
                "scheduled_run_time": scheduled_run_time.isoformat(),
                "exception_type": type(exception).__name__,
            },
            exc_info=exception,
        )

    @staticmethod
    def _job_missed_callback(job_id: str, scheduled_run_time: datetime) -> None:
        logger.warning(
            "Scheduled sync missed its execution window.",
            extra={
                "job_id": job_id,
                "scheduled_run_time": scheduled_run_time.isoformat(),
            },
        )
