from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

from codewatch.core.protocol import AgentEvent, AgentEventType


def completed(message: str = "done") -> list[AgentEvent]:
    return [
        AgentEvent(type=AgentEventType.INFO, message="working"),
        AgentEvent(type=AgentEventType.COMPLETED, message=message),
    ]


def failed(message: str = "boom") -> list[AgentEvent]:
    return [AgentEvent(type=AgentEventType.ERROR, message=message)]


class FakeHandle:
    def __init__(self, runtime: FakeRuntime, events: list[AgentEvent | Exception], delay: float) -> None:
        self.runtime = runtime
        self.events = events
        self.delay = delay
        self.files: list[str] = []
        self.instructions: list[str] = []
        self.disposed = False

    def add_file(self, path: str) -> None:
        self.files.append(path)

    async def run(self, instruction: str) -> AsyncIterator[AgentEvent]:
        self.instructions.append(instruction)
        self.runtime.active += 1
        self.runtime.peak = max(self.runtime.peak, self.runtime.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for event in self.events:
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            self.runtime.active -= 1

    async def dispose(self) -> None:
        self.disposed = True


class FakeRuntime:
    """Agent runtime double; each spawn takes the next scripted event list."""

    def __init__(self, *scripts: list[AgentEvent | Exception], delay: float = 0.0) -> None:
        self.scripts = list(scripts)
        self.delay = delay
        self.handles: list[FakeHandle] = []
        self.spawn_calls: list[tuple[str, bool, Path | None]] = []
        self.active = 0
        self.peak = 0

    def spawn(self, agent_type: str, headless: bool = True, cwd: Path | None = None) -> FakeHandle:
        self.spawn_calls.append((agent_type, headless, cwd))
        events = self.scripts.pop(0) if self.scripts else completed()
        handle = FakeHandle(self, events, self.delay)
        self.handles.append(handle)
        return handle


def crashed(error: Exception) -> list[AgentEvent | Exception]:
    """Session that emits one info line, then raises ``error`` from run()."""
    return [AgentEvent(type=AgentEventType.INFO, message="working"), error]
