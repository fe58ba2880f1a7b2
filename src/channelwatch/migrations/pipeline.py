"""Plan and run schema migrations one atomic step at a time."""

from collections import deque
from collections.abc import Sequence
import logging

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..db import SettingsDatabase
from ..db.settings_db import schema_version_upsert
from ..db.sqlalchemy_core import SqlalchemyCore
from ..exceptions import DatabaseOperationError, MigrationStepError
from ..worker.types import ProgressCallback
from .steps import MIGRATIONS
from .types import (
    Failed,
    MigrationQueue,
    MigrationStep,
    PipelineState,
    StepOutcome,
    Succeeded,
)

logger = logging.getLogger(__name__)


def _pending_steps(
    conn: Connection, steps: Sequence[MigrationStep], current_version: int
) -> list[MigrationStep]:
    return [
        step
        for step in steps
        if step.target_version > current_version and not step.is_applied(conn)
    ]


def _apply_step(conn: Connection, step: MigrationStep) -> None:
    context = MigrationContext.configure(conn)
    step.apply(Operations(context), conn)
    conn.execute(schema_version_upsert(step.target_version))


class SchemaMigrationPipeline:
    """Bring a store's layout up to date through an ordered table of steps.

    Each step runs in its own transaction together with the write of its
    target version, so the version marker always matches the committed
    layout. Steps are forward-only; a failure leaves earlier steps
    committed and halts the queue it came from.

    Attributes:
        _db: Core SQLAlchemy database manager.
        _settings_db: Access to the schema version marker.
        _steps: Migration table, ordered by target version.
    """

    def __init__(
        self,
        db_core: SqlalchemyCore,
        settings_db: SettingsDatabase,
        steps: Sequence[MigrationStep] = MIGRATIONS,
    ):
        versions = [step.target_version for step in steps]
        if versions != sorted(set(versions)):
            raise ValueError(
                f"Migration steps must have strictly ascending target versions, got {versions}"
            )
        self._db = db_core
        self._settings_db = settings_db
        self._steps = tuple(steps)

    @property
    def latest_version(self) -> int:
        """Target version of the last step, or 0 without steps."""
        return self._steps[-1].target_version if self._steps else 0

    async def plan(self, current_version: int | None = None) -> MigrationQueue:
        """Compute the steps that still need to run.

        A step is pending when its target version is above the current
        version and its structural check reports the change as missing.
        Checks are evaluated against the store every time, so planning again
        after a failure resumes at the first change that is really missing.

        Args:
            current_version: Version to plan from; read from the store when
                omitted.

        Returns:
            A queue of pending steps in table order.

        Raises:
            DatabaseOperationError: If the store cannot be inspected.
        """
        if current_version is None:
            current_version = await self._settings_db.get_schema_version()
        try:
            async with self._db.begin() as conn:
                pending = await conn.run_sync(
                    _pending_steps, self._steps, current_version
                )
        except SQLAlchemyError as e:
            raise DatabaseOperationError(
                "Failed to inspect the store for pending migrations."
            ) from e

        logger.info(
            "Migration plan computed.",
            extra={
                "current_version": current_version,
                "pending_versions": [step.target_version for step in pending],
            },
        )
        return MigrationQueue(pending=deque(pending))

    async def run_next(self, queue: MigrationQueue) -> StepOutcome:
        """Apply the step at the head of the queue.

        Args:
            queue: A queue returned by ``plan``.

        Returns:
            ``Succeeded`` once the step and its version are committed; the
            step leaves the queue. ``Failed`` if the step raised; nothing of
            the step was committed and the queue halts. A halted queue
            returns its failure again without running anything.

        Raises:
            ValueError: If the queue has no pending step.
        """
        if queue.failure is not None:
            return queue.failure
        if not queue.pending:
            raise ValueError("Migration queue has no pending step.")

        step = queue.pending[0]
        queue.state = PipelineState.RUNNING
        log_params = {
            "target_version": step.target_version,
            "description": step.description,
        }
        logger.info("Applying migration step.", extra=log_params)
        try:
            async with self._db.begin() as conn:
                await conn.run_sync(_apply_step, step)
        except Exception as e:
            error = MigrationStepError(
                f"Migration to version {step.target_version} failed.",
                target_version=step.target_version,
                description=step.description,
            )
            error.__cause__ = e
            logger.error("Migration step failed.", extra=log_params, exc_info=error)
            failure = Failed(step=step, error=error)
            queue.state = PipelineState.FAILED
            queue.failure = failure
            return failure

        queue.pending.popleft()
        queue.completed.append(step)
        if not queue.pending:
            queue.state = PipelineState.SUCCEEDED
        logger.info("Migration step applied.", extra=log_params)
        return Succeeded(step=step)

    async def run_all(
        self, queue: MigrationQueue, progress: ProgressCallback | None = None
    ) -> StepOutcome | None:
        """Run steps until the queue is empty or a step fails.

        Args:
            queue: A queue returned by ``plan``.
            progress: Optional callback receiving (fraction done, message).

        Returns:
            The outcome of the last step run, or None if nothing was pending.
        """
        total = len(queue) + len(queue.completed)
        outcome: StepOutcome | None = queue.failure
        while queue.pending and queue.failure is None:
            step = queue.pending[0]
            if progress:
                progress(
                    len(queue.completed) / total,
                    f"Migrating to version {step.target_version}: {step.description}...",
                )
            outcome = await self.run_next(queue)
        if progress and queue.state is PipelineState.SUCCEEDED:
            progress(1.0, "Migration finished.")
        return outcome
