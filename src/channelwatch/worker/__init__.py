"""Single-task background worker with progress reporting."""

from .task_handle import TaskHandle
from .types import ProgressCallback, ProgressEvent, TaskCompletion
from .worker import BackgroundWorker

__all__ = [
    "BackgroundWorker",
    "ProgressCallback",
    "ProgressEvent",
    "TaskCompletion",
    "TaskHandle",
]
