"""Types shared by background tasks and their observers."""

from collections.abc import Callable
from dataclasses import dataclass

type ProgressCallback = Callable[[float, str], None]


@dataclass(frozen=True)
class ProgressEvent:
    """Progress reported by a running task.

    Attributes:
        fraction: Share of the work done, between 0 and 1.
        message: Human readable description of the current step.
    """

    fraction: float
    message: str


@dataclass(frozen=True)
class TaskCompletion[T]:
    """Terminal state of a task.

    Attributes:
        success: True if the task returned normally.
        result: The task's return value on success.
        error: The exception the task raised on failure, or the
            cancellation that interrupted it.
    """

    success: bool
    result: T | None = None
    error: BaseException | None = None
