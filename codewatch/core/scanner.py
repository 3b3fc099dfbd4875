"""Directive comment scanner.

Only single-line comments are considered: a trimmed line must start with
``#`` or ``//``. A comment is a directive when it starts with ``# AI`` /
``// AI`` or ends with ``AI``, ``AI!`` or ``AI?``.

Classification looks at the comment body, highest precedence first:
- contains ``AI!`` -> MODIFY
- contains ``AI?`` -> QUESTION
- contains ``AI``  -> NOTE
"""

from __future__ import annotations

from codewatch.core.model import Trigger, TriggerKind

COMMENT_MARKERS = ("#", "//")
PREFIX_MARKERS = ("# AI", "// AI")
SUFFIX_MARKERS = ("AI", "AI!", "AI?")


def _strip_marker(line: str) -> str:
    for marker in COMMENT_MARKERS:
        if line.startswith(marker):
            return line[len(marker):].lstrip()
    return line


def is_directive(line: str) -> bool:
    """Return True if a trimmed comment line carries an AI marker."""
    if not line.startswith(COMMENT_MARKERS):
        return False
    return line.startswith(PREFIX_MARKERS) or line.endswith(SUFFIX_MARKERS)


def classify_line(line: str) -> tuple[TriggerKind, str] | None:
    """Classify a single line of text.

    Args:
        line: Raw line (leading/trailing whitespace is ignored).

    Returns:
        (kind, instruction_text) for directive comments, None otherwise.
    """
    text = line.strip()
    if not is_directive(text):
        return None

    body = _strip_marker(text)
    if "AI!" in body:
        return TriggerKind.MODIFY, body
    if "AI?" in body:
        return TriggerKind.QUESTION, body
    if "AI" in body:
        return TriggerKind.NOTE, body
    return None


def scan(file_path: str, content: str) -> list[Trigger]:
    """Scan file content for directive comments.

    Args:
        file_path: Path recorded on each trigger.
        content: Full file text.

    Returns:
        Triggers in file order, with 1-based line numbers.
    """
    triggers: list[Trigger] = []
    for index, raw_line in enumerate(content.split("\n")):
        classified = classify_line(raw_line)
        if classified is None:
            continue
        kind, instruction = classified
        triggers.append(
            Trigger(
                file_path=file_path,
                line_number=index + 1,
                raw_line=raw_line.rstrip("\r"),
                instruction_text=instruction,
                kind=kind,
            )
        )
    return triggers


def modify_triggers(triggers: list[Trigger]) -> list[Trigger]:
    """Filter to the triggers that request a code modification."""
    return [t for t in triggers if t.kind is TriggerKind.MODIFY]
