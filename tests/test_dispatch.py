"""Tests for the bounded-concurrency dispatch queue."""

import asyncio

import pytest

from codewatch.core.dispatch import DispatchQueue
from codewatch.core.errors import QueueClosedError, ReadError
from codewatch.core.model import QueueTask


def _tasks(n: int) -> list[QueueTask]:
    return [QueueTask("local", f"f{i}.py") for i in range(n)]


class Recorder:
    def __init__(self, delay: float = 0.02, fail_on: set[str] | None = None) -> None:
        self.delay = delay
        self.fail_on = fail_on or set()
        self.active = 0
        self.peak = 0
        self.order: list[str] = []

    async def __call__(self, task: QueueTask) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.order.append(task.file_path)
        try:
            await asyncio.sleep(self.delay)
            if task.file_path in self.fail_on:
                raise ReadError(task.file_path)
            if task.file_path == "crash.py":
                raise RuntimeError("unexpected")
        finally:
            self.active -= 1


def _run(handler: Recorder, tasks: list[QueueTask], concurrency: int) -> DispatchQueue:
    async def main() -> DispatchQueue:
        queue = DispatchQueue(handler, concurrency=concurrency)
        queue.start()
        for task in tasks:
            queue.push(task)
        assert await queue.drain(timeout=5)
        await queue.stop()
        return queue

    return asyncio.run(main())


def test_concurrency_one_never_overlaps_and_is_fifo():
    handler = Recorder()
    queue = _run(handler, _tasks(4), concurrency=1)

    assert handler.peak == 1
    assert handler.order == ["f0.py", "f1.py", "f2.py", "f3.py"]
    assert queue.processed == 4
    assert queue.peak_active == 1


def test_concurrency_limit_is_respected():
    handler = Recorder()
    queue = _run(handler, _tasks(10), concurrency=3)

    assert handler.peak == 3
    assert queue.peak_active == 3
    assert queue.processed == 10
    assert queue.active == 0


def test_task_failures_are_isolated():
    handler = Recorder(fail_on={"f1.py"})
    tasks = _tasks(3) + [QueueTask("local", "crash.py"), QueueTask("local", "after.py")]
    queue = _run(handler, tasks, concurrency=1)

    assert handler.order == ["f0.py", "f1.py", "f2.py", "crash.py", "after.py"]
    assert queue.failed == 2
    assert queue.processed == 5


def test_push_after_close_is_rejected():
    async def main() -> None:
        queue = DispatchQueue(Recorder(), concurrency=1)
        queue.close()
        with pytest.raises(QueueClosedError):
            queue.push(QueueTask("local", "a.py"))
        assert queue.pending == 0

    asyncio.run(main())


def test_close_still_processes_queued_tasks():
    handler = Recorder()

    async def main() -> None:
        queue = DispatchQueue(handler, concurrency=1)
        queue.start()
        for task in _tasks(3):
            queue.push(task)
        queue.close()
        assert await queue.drain(timeout=5)
        await queue.stop()
        assert not queue.running

    asyncio.run(main())
    assert len(handler.order) == 3


def test_drain_times_out_on_stuck_task():
    async def main() -> None:
        gate = asyncio.Event()

        async def stuck(_task: QueueTask) -> None:
            await gate.wait()

        queue = DispatchQueue(stuck, concurrency=1)
        queue.start()
        queue.push(QueueTask("local", "a.py"))
        assert await queue.drain(timeout=0.05) is False
        assert queue.active == 1
        await queue.stop()

    asyncio.run(main())


def test_invalid_concurrency():
    with pytest.raises(ValueError, match=">= 1"):
        DispatchQueue(Recorder(), concurrency=0)
