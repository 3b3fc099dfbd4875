"""Headless agent sessions run as subprocesses.

Two stdio protocols are supported:

- ``jsonl``: codewatch writes one AgentCommand JSON line to stdin and the
  agent reports AgentEvent JSON lines (info/error/completed) on stdout.
- ``text``: codewatch writes the raw instruction to stdin and appends the
  bound files as arguments. Every stdout line is info; the exit code decides
  between completed (0) and error (anything else).
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Protocol

from codewatch.core.config import AgentConfig
from codewatch.core.errors import AgentError
from codewatch.core.logging_setup import get_logger
from codewatch.core.protocol import (
    AgentCommand,
    AgentEvent,
    AgentEventType,
    CommandType,
    execute_command,
    parse_agent_event,
)

logger = get_logger(__name__)

STREAM_LIMIT = 1024 * 1024
SHUTDOWN_WAIT_S = 3.0


class AgentHandle(Protocol):
    """One headless agent session."""

    def add_file(self, path: str) -> None: ...

    def run(self, instruction: str) -> AsyncIterator[AgentEvent]: ...

    async def dispose(self) -> None: ...


class AgentRuntime(Protocol):
    """Factory for agent sessions."""

    def spawn(
        self, agent_type: str, headless: bool = True, cwd: Path | None = None
    ) -> AgentHandle: ...


class SubprocessAgentHandle:
    """Runtime handle for one agent subprocess."""

    def __init__(
        self,
        label: str,
        config: AgentConfig,
        cwd: Path | None = None,
        headless: bool = True,
    ) -> None:
        self.label = label
        self.config = config
        self.cwd = cwd
        self.headless = headless
        self.files: list[str] = []
        self.process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    def add_file(self, path: str) -> None:
        """Bind a file into the session's working context."""
        if path not in self.files:
            self.files.append(path)

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process is not None else None

    async def _start(self) -> asyncio.subprocess.Process:
        cmd = list(self.config.command)
        if self.config.protocol == "text":
            cmd.extend(self.files)

        env = {**os.environ, **self.config.env}
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.cwd) if self.cwd is not None else None,
                env=env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise AgentError(f"Failed to start agent '{self.label}' ({cmd[0]}): {e}") from e

        self._stderr_task = asyncio.create_task(self._forward_stderr(proc))
        return proc

    async def _forward_stderr(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return
        async for raw in proc.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                logger.debug(f"[{self.label}][ERR] {line}")

    async def _send(self, command: AgentCommand) -> None:
        if self.process is None or self.process.stdin is None:
            return
        if self.process.returncode is not None:
            return
        try:
            self.process.stdin.write((command.model_dump_json() + "\n").encode("utf-8"))
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"[{self.label}] Command send error: {e}")

    async def run(self, instruction: str) -> AsyncIterator[AgentEvent]:
        """Execute an instruction and yield the session's events.

        The last event yielded is always terminal (error or completed).

        Raises:
            AgentError: If the session was already started or cannot start.
        """
        if self.process is not None:
            raise AgentError(f"Agent session '{self.label}' already executed")

        self.process = proc = await self._start()
        assert proc.stdout is not None and proc.stdin is not None

        if self.config.protocol == "jsonl":
            await self._send(execute_command(instruction, self.files, self.headless))
        else:
            try:
                proc.stdin.write(instruction.encode("utf-8"))
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.debug(f"[{self.label}] Agent closed stdin early: {e}")
            proc.stdin.close()

        async for raw in proc.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                continue
            if self.config.protocol == "jsonl":
                event = parse_agent_event(line)
            else:
                event = AgentEvent(type=AgentEventType.INFO, message=line)
            yield event
            if event.terminal:
                return

        code = await proc.wait()
        if code == 0:
            yield AgentEvent(type=AgentEventType.COMPLETED, message="", data={"exit_code": 0})
        else:
            yield AgentEvent(
                type=AgentEventType.ERROR,
                message=f"Agent exited with code {code}",
                data={"exit_code": code},
            )

    async def dispose(self) -> None:
        """Ask the agent to exit, then terminate or kill it if it lingers."""
        proc = self.process
        if proc is None:
            return

        if proc.returncode is None:
            if self.config.protocol == "jsonl":
                await self._send(AgentCommand(cmd=CommandType.SHUTDOWN))
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()
            try:
                await asyncio.wait_for(proc.wait(), SHUTDOWN_WAIT_S)
            except TimeoutError:
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), SHUTDOWN_WAIT_S)
                except TimeoutError:
                    proc.kill()
                    await proc.wait()

        if self._stderr_task is not None:
            await asyncio.gather(self._stderr_task, return_exceptions=True)
            self._stderr_task = None


class SubprocessAgentRuntime:
    """Spawns agent sessions from the [agents] configuration."""

    def __init__(self, agents: dict[str, AgentConfig], cwd: Path | None = None) -> None:
        """Initialize runtime.

        Args:
            agents: Agent configurations keyed by agent type.
            cwd: Default working directory for sessions.
        """
        self.agents = agents
        self.cwd = cwd
        self.spawned = 0

    def spawn(
        self, agent_type: str, headless: bool = True, cwd: Path | None = None
    ) -> SubprocessAgentHandle:
        """Create a session for an agent type (the process starts on run()).

        Raises:
            AgentError: If the agent type is unknown or has no command.
        """
        config = self.agents.get(agent_type)
        if config is None:
            raise AgentError(f"Unknown agent type: {agent_type}")
        if not config.command:
            raise AgentError(f"No command configured for agent type '{agent_type}'")

        self.spawned += 1
        return SubprocessAgentHandle(
            label=f"{agent_type}#{self.spawned}",
            config=config,
            cwd=cwd or self.cwd,
            headless=headless,
        )
