"""Agent session protocol message types and validation."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError


class AgentEventType(str, Enum):
    """Agent → codewatch event types."""

    INFO = "info"
    ERROR = "error"
    COMPLETED = "completed"


class CommandType(str, Enum):
    """codewatch → Agent command types."""

    EXECUTE = "execute"
    SHUTDOWN = "shutdown"


class AgentEvent(BaseModel):
    """Event reported by an agent session."""

    type: AgentEventType
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        """True for events that end a session (error or completed)."""
        return self.type in (AgentEventType.ERROR, AgentEventType.COMPLETED)


class AgentCommand(BaseModel):
    """Command envelope written to a jsonl agent's stdin."""

    cmd: CommandType
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


def execute_command(instruction: str, files: list[str], headless: bool = True) -> AgentCommand:
    """Build the EXECUTE command for one session."""
    return AgentCommand(
        cmd=CommandType.EXECUTE,
        args={"instruction": instruction, "files": files, "headless": headless},
    )


def parse_agent_event(line: str) -> AgentEvent:
    """Parse one stdout line from a jsonl agent.

    Lines that are not JSON objects, or that do not validate as an event,
    are reported as INFO so that agent chatter is never lost.

    Args:
        line: Raw line from agent stdout (without newline).

    Returns:
        Parsed event.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return AgentEvent(type=AgentEventType.INFO, message=line)

    if not isinstance(data, dict):
        return AgentEvent(type=AgentEventType.INFO, message=line)

    try:
        return AgentEvent.model_validate(data)
    except ValidationError:
        return AgentEvent(type=AgentEventType.INFO, message=line)
