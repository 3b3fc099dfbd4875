"""File access for the dispatch pipeline."""

from __future__ import annotations

import asyncio
from pathlib import Path

from codewatch.core.logging_setup import get_logger

logger = get_logger(__name__)


def _read_text(path: Path) -> str | None:
    try:
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
        return None


async def read_file(path: str | Path) -> str | None:
    """Read a text file without blocking the event loop.

    Args:
        path: File to read.

    Returns:
        File content, or None if the file is missing or unreadable.
    """
    return await asyncio.to_thread(_read_text, Path(path))
