from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from codewatch.core.model import ChangeKind, WatchEvent


class FakeWatcher:
    def __init__(self, root: Path, **options: Any) -> None:
        self.root = root
        self.options = options
        self.closed = False
        self._events: asyncio.Queue[WatchEvent | None] = asyncio.Queue()

    def emit(self, kind: ChangeKind, path: str | Path = "", error: BaseException | None = None) -> None:
        self._events.put_nowait(WatchEvent(kind=kind, path=str(path), error=error))

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[WatchEvent]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._events.put_nowait(None)


class FakeWatchFactory:
    def __init__(self, fail_roots: set[Path] | None = None) -> None:
        self.watchers: dict[Path, FakeWatcher] = {}
        self.fail_roots = fail_roots or set()

    def __call__(self, root: Path, **options: Any) -> FakeWatcher:
        if root in self.fail_roots:
            raise FileNotFoundError(f"Watch root does not exist: {root}")
        watcher = FakeWatcher(root, **options)
        self.watchers[root] = watcher
        return watcher


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()
