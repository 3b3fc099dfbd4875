"""Logging configuration for the codewatch process.

All service logs are written to stderr with Rich formatting. A plain-text
file log can be added for unattended runs.

Log records about one watch target carry a ``watch_target`` attribute (see
:func:`get_target_logger`). The console shows it as a ``[target]`` prefix and
the file log as its own column, so a multi-root run can be filtered per root.
"""

from __future__ import annotations

import logging
from typing import Literal

from rich.logging import RichHandler

Verbosity = Literal["debug", "info", "warning", "error"]

NO_TARGET = "-"


class WatchTargetFilter(logging.Filter):
    """Fills in the watch target fields every formatter expects."""

    def filter(self, record: logging.LogRecord) -> bool:
        target = getattr(record, "watch_target", None) or NO_TARGET
        record.watch_target = target
        record.target_prefix = "" if target == NO_TARGET else f"[{target}] "
        return True


class WatchTargetAdapter(logging.LoggerAdapter):
    """Tags every record with the watch target it concerns."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("watch_target", self.extra["watch_target"])
        return msg, kwargs


def setup_logging(
    verbosity: Verbosity = "info",
    log_to_file: bool = False,
    log_file_path: str | None = None,
) -> logging.Logger:
    """Configure logging for the codewatch process.

    Sets up logging with Rich handler for colorful stderr output. The verbosity
    level controls what is displayed on the console; the file log (if any)
    always receives everything.

    Args:
        verbosity: Console verbosity level (debug, info, warning, error)
        log_to_file: Whether to also log to a file (default: False)
        log_file_path: Path for file logging (if log_to_file=True)

    Returns:
        Configured root logger instance

    Example:
        from codewatch.core.logging_setup import setup_logging

        logger = setup_logging(verbosity="debug")
        logger.info("Watcher started")
    """
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    log_level = level_map.get(verbosity, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Avoid duplicates on re-initialization
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=None,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(log_level)
    rich_handler.setFormatter(logging.Formatter("%(target_prefix)s%(message)s", datefmt="[%X]"))
    rich_handler.addFilter(WatchTargetFilter())
    root_logger.addHandler(rich_handler)

    if log_to_file and log_file_path:
        try:
            file_handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s | %(watch_target)s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            file_handler.addFilter(WatchTargetFilter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            # Console logging still works; keep running
            root_logger.warning(f"Failed to setup file logging: {e}")

    # watchfiles logs every poll cycle at debug
    logging.getLogger("watchfiles").setLevel(max(log_level, logging.INFO))

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a named logger for a specific module.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def get_target_logger(name: str, watch_target_id: str) -> WatchTargetAdapter:
    """Get a logger whose records are tagged with a watch target id.

    Args:
        name: Logger name (typically __name__ of the module)
        watch_target_id: Watch target the messages are about

    Returns:
        Logger adapter
    """
    return WatchTargetAdapter(logging.getLogger(name), {"watch_target": watch_target_id})


def init_logging(verbosity: str = "info", log_file: str | None = None) -> None:
    """Initialize logging with minimal configuration.

    Should be called early in cli.py.

    Args:
        verbosity: Console verbosity level (debug, info, warning, error)
        log_file: Optional path of a file log.
    """
    setup_logging(
        verbosity=verbosity,  # type: ignore[arg-type]
        log_to_file=bool(log_file),
        log_file_path=log_file,
    )
