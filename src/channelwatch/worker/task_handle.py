"""Handle to one task running on the background worker."""

import asyncio
from collections.abc import AsyncGenerator, Callable
import logging

from .types import ProgressEvent, TaskCompletion

logger = logging.getLogger(__name__)


class TaskHandle[T]:
    """Observe the progress and the outcome of a background task.

    Progress can be consumed as an async stream of events, and the outcome
    awaited or received through completion callbacks.

    Attributes:
        name: Name of the task.
    """

    def __init__(self, name: str):
        self.name = name
        self._events: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._finished = asyncio.Event()
        self._completion: TaskCompletion[T] | None = None
        self._callbacks: list[Callable[[TaskCompletion[T]], None]] = []
        self._last_progress: ProgressEvent | None = None

    @property
    def done(self) -> bool:
        """Return True once the task has finished."""
        return self._completion is not None

    @property
    def completion(self) -> TaskCompletion[T] | None:
        """Return the terminal state, or None while the task runs."""
        return self._completion

    @property
    def last_progress(self) -> ProgressEvent | None:
        """Return the most recent progress event."""
        return self._last_progress

    def report(self, fraction: float, message: str) -> None:
        """Publish a progress event; ignored once the task has finished."""
        if self.done:
            return
        event = ProgressEvent(fraction=min(max(fraction, 0.0), 1.0), message=message)
        self._last_progress = event
        self._events.put_nowait(event)

    def add_done_callback(self, callback: Callable[[TaskCompletion[T]], None]) -> None:
        """Call ``callback`` with the completion once the task finishes.

        Runs immediately if the task has already finished.
        """
        if self._completion is not None:
            callback(self._completion)
            return
        self._callbacks.append(callback)

    def finish(self, completion: TaskCompletion[T]) -> None:
        """Record the terminal state and notify observers.

        Called by the worker; a handle finishes exactly once.

        Raises:
            RuntimeError: If the handle has already finished.
        """
        if self._completion is not None:
            raise RuntimeError(f"Task {self.name!r} already finished.")
        self._completion = completion
        self._events.put_nowait(None)
        self._finished.set()
        for callback in self._callbacks:
            try:
                callback(completion)
            except Exception as e:
                logger.error(
                    "Task completion callback failed.",
                    extra={"task_name": self.name},
                    exc_info=e,
                )
        self._callbacks.clear()

    async def events(self) -> AsyncGenerator[ProgressEvent]:
        """Yield progress events until the task finishes.

        The stream is meant for a single consumer.
        """
        while (event := await self._events.get()) is not None:
            yield event

    async def wait(self) -> T:
        """Wait for the task and return its result.

        Raises:
            Exception: Whatever the task raised.
        """
        await self._finished.wait()
        completion = self._completion
        assert completion is not None
        if completion.error is not None:
            raise completion.error
        return completion.result  # type: ignore[return-value]
