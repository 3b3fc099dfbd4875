"""Filesystem watcher adapter built on watchfiles.

A watcher is an async iterator of typed WatchEvents for one root. Backend
failures are reported once as an ERROR event, after which iteration ends;
the watcher is not restarted.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from fnmatch import fnmatch
from pathlib import Path
from typing import Protocol

from watchfiles import Change, DefaultFilter, awatch

from codewatch.core.logging_setup import get_logger
from codewatch.core.model import ChangeKind, WatchEvent

logger = get_logger(__name__)

IgnoreFilter = Callable[[Change, str], bool]

_CHANGE_KINDS = {
    Change.added: ChangeKind.ADD,
    Change.modified: ChangeKind.CHANGE,
    Change.deleted: ChangeKind.UNLINK,
}


class Watcher(Protocol):
    def __aiter__(self) -> AsyncIterator[WatchEvent]: ...

    async def close(self) -> None: ...


WatchFactory = Callable[..., Watcher]


class GlobIgnoreFilter(DefaultFilter):
    """watchfiles DefaultFilter plus glob patterns relative to the root.

    A pattern matches either the full relative path (``build/*``) or the file
    name (``*.lock``).
    """

    def __init__(self, root: Path | str, patterns: Iterable[str] = ()) -> None:
        super().__init__()
        self.root = Path(root)
        self.patterns = tuple(patterns)

    def is_ignored(self, path: str) -> bool:
        try:
            rel = Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return False
        name = rel.rsplit("/", 1)[-1]
        return any(fnmatch(rel, p) or fnmatch(name, p) for p in self.patterns)

    def __call__(self, change: Change, path: str) -> bool:
        if not super().__call__(change, path):
            return False
        return not self.is_ignored(path)


def to_watch_event(change: Change, path: str) -> WatchEvent | None:
    """Map a watchfiles change to a WatchEvent; directories are skipped."""
    kind = _CHANGE_KINDS.get(change)
    if kind is None:
        return None
    if kind is not ChangeKind.UNLINK and Path(path).is_dir():
        return None
    return WatchEvent(kind=kind, path=path)


class PollingWatcher:
    """Polling watcher over one root directory."""

    def __init__(
        self,
        root: Path,
        poll_interval_ms: int = 1000,
        stability_threshold_ms: int = 2000,
        ignore_filter: IgnoreFilter | None = None,
    ) -> None:
        """Initialize watcher.

        Args:
            root: Directory to watch recursively.
            poll_interval_ms: Delay between polls.
            stability_threshold_ms: Quiet period configured for the target.
                Raw events are reported immediately; the debounce tracker
                applies this threshold.
            ignore_filter: watchfiles-style filter; True keeps a change.
        """
        self.root = root
        self.poll_interval_ms = poll_interval_ms
        self.stability_threshold_ms = stability_threshold_ms
        self.ignore_filter = ignore_filter if ignore_filter is not None else DefaultFilter()
        self._stop = asyncio.Event()

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[WatchEvent]:
        try:
            async for changes in awatch(
                self.root,
                watch_filter=self.ignore_filter,
                force_polling=True,
                poll_delay_ms=self.poll_interval_ms,
                debounce=self.poll_interval_ms,
                stop_event=self._stop,
                recursive=True,
            ):
                for change, path in sorted(changes, key=lambda c: c[1]):
                    event = to_watch_event(change, path)
                    if event is not None:
                        yield event
        except Exception as e:
            logger.debug(f"Watcher for {self.root} stopped: {e}")
            yield WatchEvent(kind=ChangeKind.ERROR, error=e)

    async def close(self) -> None:
        """Stop polling; the event iterator ends after the current poll."""
        self._stop.set()


def watch(
    root: Path | str,
    *,
    poll_interval_ms: int = 1000,
    stability_threshold_ms: int = 2000,
    ignore_filter: IgnoreFilter | None = None,
) -> PollingWatcher:
    """Create a watcher for a root directory.

    Raises:
        FileNotFoundError: If the root does not exist.
        NotADirectoryError: If the root is not a directory.
    """
    path = Path(root)
    if not path.exists():
        raise FileNotFoundError(f"Watch root does not exist: {path}")
    if not path.is_dir():
        raise NotADirectoryError(f"Watch root is not a directory: {path}")
    return PollingWatcher(
        root=path,
        poll_interval_ms=poll_interval_ms,
        stability_threshold_ms=stability_threshold_ms,
        ignore_filter=ignore_filter,
    )
