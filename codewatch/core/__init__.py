"""Core codewatch modules."""

from codewatch.core.agent_process import SubprocessAgentRuntime
from codewatch.core.config import AgentConfig, Config, FilesystemConfig, ServiceConfig, load_config
from codewatch.core.debounce import DebounceTracker, PathState, PendingChange
from codewatch.core.dispatch import DispatchQueue, TaskStatus
from codewatch.core.errors import (
    AgentError,
    CodeWatchError,
    ConfigError,
    QueueClosedError,
    ReadError,
    ScanError,
    WatchError,
)
from codewatch.core.invocation import AgentInvoker, InvocationOutcome, InvocationResult
from codewatch.core.model import ChangeKind, QueueTask, Trigger, TriggerKind, WatchEvent, WatchTarget
from codewatch.core.scanner import classify_line, scan
from codewatch.core.service import CodeWatchService

__all__ = [
    # Model
    "ChangeKind",
    "QueueTask",
    "Trigger",
    "TriggerKind",
    "WatchEvent",
    "WatchTarget",
    # Errors
    "CodeWatchError",
    "ConfigError",
    "WatchError",
    "ReadError",
    "ScanError",
    "AgentError",
    "QueueClosedError",
    # Pipeline
    "DebounceTracker",
    "PathState",
    "PendingChange",
    "classify_line",
    "scan",
    "DispatchQueue",
    "TaskStatus",
    "AgentInvoker",
    "InvocationOutcome",
    "InvocationResult",
    "SubprocessAgentRuntime",
    # Config
    "AgentConfig",
    "Config",
    "FilesystemConfig",
    "ServiceConfig",
    "load_config",
    # Service
    "CodeWatchService",
]
