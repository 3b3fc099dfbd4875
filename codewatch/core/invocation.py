"""Agent invocation for Modify directives.

For each Modify trigger the file is read again (the scan may be stale), an
instruction payload is built around the directive, and exactly one headless
agent session is run. The calling worker waits for completion, error or the
configured timeout. On timeout the session is left running and tracked as an
orphan until it finishes on its own.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from codewatch.core.agent_process import AgentHandle, AgentRuntime
from codewatch.core.errors import AgentError, CodeWatchError, ReadError
from codewatch.core.files import read_file
from codewatch.core.logging_setup import get_logger
from codewatch.core.model import Trigger
from codewatch.core.protocol import AgentEventType

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "When you write the file back, you MUST remove the line containing the AI! "
    "directive you were asked to complete. It is a critical failure to leave that "
    "line in the file."
)

INSTRUCTION_TEMPLATE = """\
{system_prompt}

The user has edited the file {file_path}, adding an instruction they expect you to carry out.
The instruction is on line {line_number}:

{instruction}

Complete the instruction in that line and in any nearby comments that belong to it, using any
tools available to you. When done, update the file. You MUST remove line {line_number}
(the line marked AI!) as part of your edit. Afterwards, print a one sentence summary of the
changes you made.

Here is the current, up to date version of {file_path}:

{file_text}"""

Reader = Callable[[str], Awaitable[str | None]]


class InvocationOutcome(str, Enum):
    """How a Modify trigger ended from the worker's point of view."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """Result of dispatching one Modify trigger."""

    trigger: Trigger
    outcome: InvocationOutcome
    summary: str = ""


def build_instruction(trigger: Trigger, file_text: str) -> str:
    """Build the instruction payload sent to the agent.

    Args:
        trigger: The Modify directive being executed.
        file_text: Current content of the file.

    Returns:
        Free-form instruction text.
    """
    return INSTRUCTION_TEMPLATE.format(
        system_prompt=SYSTEM_PROMPT,
        file_path=trigger.file_path,
        line_number=trigger.line_number,
        instruction=trigger.instruction_text,
        file_text=file_text,
    )


def directive_present(trigger: Trigger, file_text: str) -> bool:
    """True if the directive line still exists in the file."""
    wanted = trigger.raw_line.strip()
    return any(line.strip() == wanted for line in file_text.split("\n"))


class AgentInvoker:
    """Runs one headless agent session per Modify trigger."""

    def __init__(
        self,
        runtime: AgentRuntime,
        read: Reader | None = None,
        timeout_s: float = 600.0,
    ) -> None:
        """Initialize invoker.

        Args:
            runtime: Agent runtime used to spawn sessions.
            read: Async file reader; defaults to codewatch.core.files.read_file.
            timeout_s: Default seconds to wait for a session.
        """
        if timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive: {timeout_s}")
        self.runtime = runtime
        self.timeout_s = timeout_s
        self._read: Reader = read or read_file
        self._orphans: set[asyncio.Task[str]] = set()

    @property
    def orphaned_sessions(self) -> int:
        """Sessions nobody waits on any more (timed out or abandoned) that are still running."""
        return len(self._orphans)

    async def invoke(
        self,
        trigger: Trigger,
        agent_type: str,
        cwd: Path | None = None,
        timeout_s: float | None = None,
    ) -> InvocationResult:
        """Dispatch a Modify trigger to a new agent session.

        Args:
            trigger: Directive to execute.
            agent_type: Agent runtime key.
            cwd: Working directory for the session.
            timeout_s: Override of the default timeout.

        Returns:
            InvocationResult (COMPLETED, TIMED_OUT or SKIPPED).

        Raises:
            ReadError: If the file cannot be read.
            AgentError: If the session cannot start or reports an error.
        """
        file_text = await self._read(trigger.file_path)
        if not file_text:
            raise ReadError(trigger.file_path)

        if not directive_present(trigger, file_text):
            logger.info(f"Directive at {trigger.location} is gone; skipping")
            return InvocationResult(trigger, InvocationOutcome.SKIPPED)

        instruction = build_instruction(trigger, file_text)
        handle = self.runtime.spawn(agent_type, headless=True, cwd=cwd)
        handle.add_file(trigger.file_path)

        logger.info(f"Code modification triggered from {trigger.location}")
        logger.info(f"Instruction: {trigger.instruction_text}")

        timeout = timeout_s if timeout_s is not None else self.timeout_s
        session = asyncio.ensure_future(self._drive(handle, instruction, trigger))
        try:
            done, _ = await asyncio.wait({session}, timeout=timeout)
        except asyncio.CancelledError:
            self._orphan(session)
            raise

        if not done:
            logger.warning(
                f"Agent session for {trigger.location} did not finish within {timeout}s; "
                f"no longer waiting"
            )
            self._orphan(session)
            return InvocationResult(trigger, InvocationOutcome.TIMED_OUT)

        summary = session.result()
        logger.info(f"Code modification complete for {trigger.location}")
        for line in summary.splitlines():
            logger.info(f"  {line}")
        return InvocationResult(trigger, InvocationOutcome.COMPLETED, summary)

    async def _drive(self, handle: AgentHandle, instruction: str, trigger: Trigger) -> str:
        output: list[str] = []
        try:
            async for event in handle.run(instruction):
                if event.type is AgentEventType.INFO:
                    if event.message:
                        output.append(event.message)
                        logger.debug(f"[{trigger.location}] {event.message}")
                elif event.type is AgentEventType.ERROR:
                    raise AgentError(
                        f"Agent failed on {trigger.location}: {event.message or 'unknown error'}"
                    )
                elif event.type is AgentEventType.COMPLETED:
                    return event.message or "\n".join(output[-1:])
            raise AgentError(f"Agent for {trigger.location} ended without reporting completion")
        except CodeWatchError:
            raise
        except Exception as e:
            raise AgentError(f"Agent session for {trigger.location} failed: {e}") from e
        finally:
            await handle.dispose()

    def _orphan(self, session: asyncio.Task[str]) -> None:
        self._orphans.add(session)
        session.add_done_callback(self._reap)

    def _reap(self, session: asyncio.Task[str]) -> None:
        self._orphans.discard(session)
        if session.cancelled():
            return
        error = session.exception()
        if error is not None:
            logger.warning(f"Orphaned agent session failed later: {error}")
        else:
            logger.info("Orphaned agent session finished later")
