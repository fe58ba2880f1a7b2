"""Background worker running one logical task at a time.

All store writes are issued from worker tasks, so there is a single writer
and no locking is needed.
"""

import asyncio
from collections.abc import Awaitable, Callable
import logging
import time

from ..exceptions import WorkerBusyError
from ..logging_config import set_context_id
from .task_handle import TaskHandle
from .types import ProgressCallback, TaskCompletion

logger = logging.getLogger(__name__)


class BackgroundWorker:
    """Run tasks on the event loop, rejecting a start while one is active.

    Tasks cannot be cancelled or queued. Each task runs with its own logging
    context id.
    """

    def __init__(self):
        self._active: TaskHandle[object] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def busy(self) -> bool:
        """Return True while a task is running."""
        return self._active is not None

    @property
    def active_task_name(self) -> str | None:
        """Return the name of the running task, if any."""
        return self._active.name if self._active else None

    def start[T](
        self, name: str, work: Callable[[ProgressCallback], Awaitable[T]]
    ) -> TaskHandle[T]:
        """Start a task.

        Args:
            name: Name of the task, used in logs.
            work: Coroutine function receiving a progress callback.

        Returns:
            A handle to observe the task.

        Raises:
            WorkerBusyError: If another task is still running.
        """
        if self._active is not None:
            raise WorkerBusyError(
                "Another task is still running.",
                task_name=name,
                active_task=self._active.name,
            )
        handle: TaskHandle[T] = TaskHandle(name)
        self._active = handle  # type: ignore[assignment]
        self._task = asyncio.create_task(self._run(handle, work), name=name)
        logger.debug("Task started.", extra={"task_name": name})
        return handle

    async def _run[T](
        self,
        handle: TaskHandle[T],
        work: Callable[[ProgressCallback], Awaitable[T]],
    ) -> None:
        set_context_id(f"{handle.name}-{int(time.time())}")
        started = time.perf_counter()
        try:
            result = await work(handle.report)
        except Exception as e:
            logger.error(
                "Task failed.",
                extra={
                    "task_name": handle.name,
                    "duration_seconds": time.perf_counter() - started,
                },
                exc_info=e,
            )
            completion: TaskCompletion[T] = TaskCompletion(success=False, error=e)
        except BaseException as e:
            logger.warning(
                "Task interrupted.",
                extra={"task_name": handle.name, "exception_type": type(e).__name__},
            )
            completion = TaskCompletion(success=False, error=e)
            raise
        else:
            logger.debug(
                "Task completed.",
                extra={
                    "task_name": handle.name,
                    "duration_seconds": time.perf_counter() - started,
                },
            )
            completion = TaskCompletion(success=True, result=result)
        finally:
            self._active = None
            handle.finish(completion)
