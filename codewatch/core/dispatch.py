"""Bounded-concurrency dispatch queue.

A fixed pool of ``concurrency`` workers consumes QueueTasks in FIFO order
from an unbounded asyncio queue. Producers never block. A failing task is
logged and counted; it never stops the pool.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from codewatch.core.errors import CodeWatchError, QueueClosedError
from codewatch.core.logging_setup import get_logger, get_target_logger
from codewatch.core.model import QueueTask

logger = get_logger(__name__)


class TaskStatus(str, Enum):
    """Lifecycle of a QueueTask."""

    QUEUED = "queued"
    SCANNING = "scanning"
    DISPATCHING = "dispatching"
    DONE = "done"
    FAILED = "failed"


TaskHandler = Callable[[QueueTask], Awaitable[None]]


class DispatchQueue:
    """Worker pool that runs a handler for each pushed task."""

    def __init__(self, handler: TaskHandler, concurrency: int = 1) -> None:
        """Initialize queue.

        Args:
            handler: Coroutine function run once per task.
            concurrency: Maximum number of tasks processed at once.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1: {concurrency}")

        self.concurrency = concurrency
        self._handler = handler
        self._queue: asyncio.Queue[QueueTask] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False

        self.active = 0
        self.peak_active = 0
        self.processed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Number of tasks waiting for a worker."""
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    def start(self) -> None:
        """Spawn the worker tasks. Must be called from a running loop."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self.worker(), name=f"codewatch-worker-{i}")
            for i in range(self.concurrency)
        ]

    def push(self, task: QueueTask) -> None:
        """Enqueue a task without blocking.

        Raises:
            QueueClosedError: If close() was already called.
        """
        if self._closed:
            raise QueueClosedError(f"Queue closed; dropping {task.file_path}")
        self._queue.put_nowait(task)

    async def worker(self) -> None:
        """Consume tasks forever, isolating each task's failure."""
        while True:
            task = await self._queue.get()
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                await self._handler(task)
            except CodeWatchError as e:
                self.failed += 1
                get_target_logger(__name__, task.watch_target_id).warning(
                    f"Task for {task.file_path} failed: {e}"
                )
            except Exception:
                self.failed += 1
                get_target_logger(__name__, task.watch_target_id).exception(
                    f"Unexpected error processing {task.file_path}"
                )
            finally:
                self.active -= 1
                self.processed += 1
                self._queue.task_done()

    def close(self) -> None:
        """Reject further pushes. Queued tasks are still processed."""
        self._closed = True

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for every queued and active task to finish.

        Args:
            timeout: Maximum seconds to wait, None for no limit.

        Returns:
            True if the queue drained, False on timeout.
        """
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except TimeoutError:
            logger.warning(
                f"Dispatch queue did not drain within {timeout}s "
                f"({self.active} active, {self.pending} queued)"
            )
            return False
        return True

    async def stop(self) -> None:
        """Cancel the worker tasks."""
        self.close()
        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
