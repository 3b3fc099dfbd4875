"""Per-path debounce state machine.

Turns a noisy stream of raw filesystem events into one processing task per
burst of edits. Each (watch_target_id, file_path) key is in exactly one state:

States:
- IDLE: Nothing outstanding for the path
- PENDING: A timer is running; the path is processed when it expires
- QUEUED: The timer elapsed and a QueueTask was pushed

Transitions:
- IDLE + add/change → PENDING (start timer)
- PENDING + add/change → PENDING (cancel timer, start a new one)
- PENDING + unlink → IDLE (cancel timer, no task)
- PENDING + timer expired → QUEUED (push QueueTask)
- QUEUED + add/change → PENDING (a second, independent task may follow)
- QUEUED + unlink → QUEUED (the queued task still runs)
- QUEUED + release → IDLE once every queued task for the path was picked up
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

from codewatch.core.logging_setup import get_target_logger
from codewatch.core.model import ChangeKind, QueueTask, WatchTarget

Key = tuple[str, str]


class PathState(Enum):
    """Debounce state of a single path."""

    IDLE = auto()
    PENDING = auto()
    QUEUED = auto()


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


@dataclass
class PendingChange:
    """Outstanding debounce timer for one path.

    Attributes:
        watch_target_id: Owning watch target.
        file_path: Path being debounced.
        expires_at: Clock time the timer fires.
        handle: Timer handle used to cancel the timer.
        resets_count: Number of times the timer was restarted.
    """

    watch_target_id: str
    file_path: str
    expires_at: float
    handle: TimerHandle = field(repr=False)
    resets_count: int = 0


class DebounceTracker:
    """Collapses bursts of add/change events into single QueueTasks.

    The tracker never reads files; it only decides *when* a path is stable.
    A path is stable once ``stability_threshold_ms`` of its watch target has
    elapsed since the last add/change event for it.
    """

    def __init__(
        self,
        targets: Iterable[WatchTarget],
        on_stable: Callable[[QueueTask], None],
        on_error: Callable[[str, BaseException | None], None] | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize tracker.

        Args:
            targets: Watch targets whose events this tracker receives.
            on_stable: Called with each QueueTask when a timer elapses.
            on_error: Called with (target_id, error) for ERROR events.
            scheduler: ``call_later``-style timer factory. Defaults to the
                running asyncio loop.
            clock: Time source matching the scheduler. Defaults to loop.time.
        """
        self._targets = {t.id: t for t in targets}
        self._on_stable = on_stable
        self._on_error = on_error
        self._scheduler = scheduler
        self._clock = clock
        self._pending: dict[Key, PendingChange] = {}
        self._queued: dict[Key, int] = {}
        self._closed = False

    def _schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        if self._scheduler is not None:
            return self._scheduler(delay, callback)
        return asyncio.get_running_loop().call_later(delay, callback)

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def state(self, watch_target_id: str, file_path: str) -> PathState:
        """Current debounce state for a path."""
        key = (watch_target_id, file_path)
        if key in self._pending:
            return PathState.PENDING
        if key in self._queued:
            return PathState.QUEUED
        return PathState.IDLE

    def pending(self, watch_target_id: str, file_path: str) -> PendingChange | None:
        """Outstanding PendingChange for a path, if any."""
        return self._pending.get((watch_target_id, file_path))

    def pending_count(self) -> int:
        return len(self._pending)

    def on_event(
        self,
        kind: ChangeKind,
        watch_target_id: str,
        file_path: str = "",
        error: BaseException | None = None,
    ) -> PathState:
        """Process one raw watcher event.

        Args:
            kind: Event kind.
            watch_target_id: Target that produced the event.
            file_path: Affected path (ignored for ERROR).
            error: Underlying error for ERROR events.

        Returns:
            The path's state after the event.

        Raises:
            KeyError: If the watch target is unknown.
        """
        target = self._targets[watch_target_id]

        if kind is ChangeKind.ERROR:
            if self._on_error is not None:
                self._on_error(watch_target_id, error)
            return PathState.IDLE

        key = (watch_target_id, file_path)

        if kind is ChangeKind.UNLINK:
            change = self._pending.pop(key, None)
            if change is not None:
                change.handle.cancel()
                get_target_logger(__name__, watch_target_id).debug(
                    f"Cancelled pending change for deleted {file_path}"
                )
            return self.state(watch_target_id, file_path)

        if self._closed:
            return self.state(watch_target_id, file_path)

        resets = 0
        existing = self._pending.pop(key, None)
        if existing is not None:
            existing.handle.cancel()
            resets = existing.resets_count + 1

        delay = target.stability_threshold_s
        handle = self._schedule(delay, lambda: self._expire(key))
        self._pending[key] = PendingChange(
            watch_target_id=watch_target_id,
            file_path=file_path,
            expires_at=self._now() + delay,
            handle=handle,
            resets_count=resets,
        )
        return PathState.PENDING

    def _expire(self, key: Key) -> None:
        change = self._pending.pop(key, None)
        if change is None:
            return
        self._queued[key] = self._queued.get(key, 0) + 1
        task = QueueTask(watch_target_id=change.watch_target_id, file_path=change.file_path)
        get_target_logger(__name__, change.watch_target_id).debug(
            f"{change.file_path} stable after {change.resets_count} reset(s)"
        )
        self._on_stable(task)

    def release(self, watch_target_id: str, file_path: str) -> None:
        """Mark one queued task for a path as picked up by a worker.

        The path returns to IDLE when no other task for it is still queued.
        """
        key = (watch_target_id, file_path)
        remaining = self._queued.get(key, 0) - 1
        if remaining > 0:
            self._queued[key] = remaining
        else:
            self._queued.pop(key, None)

    def close(self) -> None:
        """Cancel every pending timer; further add/change events are ignored."""
        self._closed = True
        for change in self._pending.values():
            change.handle.cancel()
        self._pending.clear()
