"""Error taxonomy for codewatch."""

from __future__ import annotations


class CodeWatchError(Exception):
    """Base exception for all codewatch errors."""

    pass


class ConfigError(CodeWatchError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


class WatchError(CodeWatchError):
    """Raised when a watch target fails; fatal to that target only."""

    def __init__(self, target_id: str, original_error: BaseException | str) -> None:
        """Initialize watch error.

        Args:
            target_id: Identifier of the watch target that failed.
            original_error: The underlying exception or a description of it.
        """
        self.target_id = target_id
        self.original_error = original_error
        super().__init__(f"Watch target '{target_id}' failed: {original_error}")


class ReadError(CodeWatchError):
    """Raised when a file cannot be read at task time."""

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        super().__init__(f"File is missing or unreadable: {file_path}")


class ScanError(CodeWatchError):
    """Raised when scanning file content for directives fails."""

    def __init__(self, file_path: str, original_error: Exception) -> None:
        self.file_path = file_path
        self.original_error = original_error
        super().__init__(f"Failed to scan {file_path}: {original_error}")


class AgentError(CodeWatchError):
    """Raised when an agent session cannot be spawned or reports failure."""

    pass


class QueueClosedError(CodeWatchError):
    """Raised when a task is pushed to a dispatch queue that has been closed."""

    pass
