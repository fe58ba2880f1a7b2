"""Types describing schema migration steps and their execution state."""

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from alembic.operations import Operations
from sqlalchemy import Connection

from ..exceptions import MigrationStepError


@dataclass(frozen=True)
class MigrationStep:
    """One forward-only change of the store layout.

    Attributes:
        target_version: Schema version the store is at once the step applied.
        description: Human readable description of the change.
        is_applied: Structural check returning True if the change is already
            present. Must not modify the store.
        apply: Performs the change on the given connection, inside the
            transaction that also records ``target_version``.
    """

    target_version: int
    description: str
    is_applied: Callable[[Connection], bool]
    apply: Callable[[Operations, Connection], None]


@dataclass(frozen=True)
class Succeeded:
    """A step applied and its version recorded.

    Attributes:
        step: The step that ran.
    """

    step: MigrationStep


@dataclass(frozen=True)
class Failed:
    """A step failed; neither its changes nor its version were recorded.

    Attributes:
        step: The step that failed.
        error: The failure, chained to the original exception.
    """

    step: MigrationStep
    error: MigrationStepError


type StepOutcome = Succeeded | Failed


class PipelineState(StrEnum):
    """Lifecycle of a migration queue."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class MigrationQueue:
    """Pending steps of one migration plan, in execution order.

    A queue that failed is halted: it keeps the failing step at its head and
    remembers the failure.

    Attributes:
        pending: Steps not applied yet.
        state: Where the queue is in its lifecycle.
        failure: The outcome that halted the queue, if any.
        completed: Steps applied through this queue, in order.
    """

    pending: deque[MigrationStep] = field(default_factory=deque[MigrationStep])
    state: PipelineState = PipelineState.IDLE
    failure: Failed | None = None
    completed: list[MigrationStep] = field(default_factory=list[MigrationStep])

    def __len__(self) -> int:
        return len(self.pending)

    @property
    def is_done(self) -> bool:
        """True once no further step will run from this queue."""
        return self.state in (PipelineState.SUCCEEDED, PipelineState.FAILED) or (
            not self.pending
        )

    @property
    def target_versions(self) -> list[int]:
        """Target versions of the pending steps, in order."""
        return [step.target_version for step in self.pending]
