"""codewatch - watch file trees and dispatch AI! comments to headless agents.

Edits are debounced per path, stable files are scanned for directive
comments, and Modify directives are handed to an agent runtime through a
bounded-concurrency queue.
"""

__version__ = "0.1.0"

from codewatch.core import (
    CodeWatchService,
    Config,
    DebounceTracker,
    DispatchQueue,
    QueueTask,
    Trigger,
    TriggerKind,
    WatchTarget,
    scan,
)

__all__ = [
    "__version__",
    "CodeWatchService",
    "Config",
    "DebounceTracker",
    "DispatchQueue",
    "QueueTask",
    "Trigger",
    "TriggerKind",
    "WatchTarget",
    "scan",
]
