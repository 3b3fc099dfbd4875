"""Data model for the change-debounce and directive-dispatch pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from codewatch.core.config import FilesystemConfig


class ChangeKind(str, Enum):
    """Raw filesystem event kinds emitted by a watcher."""

    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
    ERROR = "error"


class TriggerKind(str, Enum):
    """Directive kinds recognised in comments."""

    MODIFY = "modify"  # AI!
    QUESTION = "question"  # AI?
    NOTE = "note"  # AI


@dataclass(frozen=True, slots=True)
class WatchTarget:
    """One monitored file tree.

    Attributes:
        id: Filesystem name from configuration (e.g., "local").
        root: Root directory being watched.
        poll_interval_ms: Watcher polling interval.
        stability_threshold_ms: Quiet period before a path is processed.
        agent_type: Agent runtime key used for Modify directives.
        ignore: Glob patterns excluded from watching.
    """

    id: str
    root: Path
    poll_interval_ms: int
    stability_threshold_ms: int
    agent_type: str
    ignore: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate watch target fields."""
        if not self.id:
            raise ValueError("WatchTarget id cannot be empty")
        if self.poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive: {self.poll_interval_ms}")
        if self.stability_threshold_ms <= 0:
            raise ValueError(
                f"stability_threshold_ms must be positive: {self.stability_threshold_ms}"
            )

    @property
    def stability_threshold_s(self) -> float:
        return self.stability_threshold_ms / 1000.0

    @classmethod
    def from_config(cls, name: str, cfg: FilesystemConfig) -> WatchTarget:
        """Build an immutable target from its configuration entry.

        Args:
            name: Filesystem name (the key under [filesystems]).
            cfg: Validated filesystem configuration.

        Returns:
            New WatchTarget with an absolute root.
        """
        return cls(
            id=name,
            root=Path(cfg.root).expanduser().resolve(),
            poll_interval_ms=cfg.poll_interval_ms,
            stability_threshold_ms=cfg.stability_threshold_ms,
            agent_type=cfg.agent_type,
            ignore=tuple(cfg.ignore),
        )


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """Typed event produced by a watcher adapter.

    Attributes:
        kind: Event kind.
        path: Affected file path (empty for ERROR events).
        error: Underlying exception for ERROR events.
    """

    kind: ChangeKind
    path: str = ""
    error: BaseException | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class QueueTask:
    """A stabilized path ready to be scanned.

    Attributes:
        watch_target_id: Owning watch target.
        file_path: Path whose debounce window elapsed.
        enqueued_at: Monotonic time the task was created.
    """

    watch_target_id: str
    file_path: str
    enqueued_at: float = field(default_factory=time.monotonic, compare=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.watch_target_id, self.file_path)


@dataclass(frozen=True, slots=True)
class Trigger:
    """A classified directive located in a file.

    Attributes:
        file_path: File the directive was found in.
        line_number: 1-based line number.
        raw_line: The line as it appeared in the file (untrimmed).
        instruction_text: Comment body without the leading comment marker.
        kind: Directive kind.
    """

    file_path: str
    line_number: int
    raw_line: str
    instruction_text: str
    kind: TriggerKind

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.line_number}"

    def to_dict(self) -> dict[str, Any]:
        """Convert trigger to a JSON-friendly dictionary."""
        return {
            "file_path": self.file_path,
            "line_number": self.line_number,
            "raw_line": self.raw_line,
            "instruction_text": self.instruction_text,
            "kind": self.kind.value,
        }
