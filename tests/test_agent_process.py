import asyncio
import sys
from pathlib import Path

import pytest

from codewatch.core.agent_process import STREAM_LIMIT, SubprocessAgentRuntime
from codewatch.core.config import AgentConfig
from codewatch.core.errors import AgentError
from codewatch.core.invocation import AgentInvoker
from codewatch.core.protocol import AgentEventType
from codewatch.core.scanner import scan

TEXT_AGENT = """
import sys
instruction = sys.stdin.read()
print("files:", ",".join(sys.argv[1:]))
print("chars:", len(instruction))
sys.exit(int(instruction.startswith("fail")) * 3)
"""

JSONL_AGENT = """
import json, sys
cmd = json.loads(sys.stdin.readline())
print(json.dumps({"type": "info", "message": cmd["args"]["instruction"]}), flush=True)
print(json.dumps({"type": "completed", "message": ",".join(cmd["args"]["files"])}), flush=True)
line = sys.stdin.readline()
sys.exit(0 if json.loads(line)["cmd"] == "shutdown" else 1)
"""


def _runtime(script: str, protocol: str) -> SubprocessAgentRuntime:
    return SubprocessAgentRuntime(
        {"py": AgentConfig(command=[sys.executable, "-c", script], protocol=protocol)}
    )


async def _collect(runtime: SubprocessAgentRuntime, instruction: str, files: list[str]):
    handle = runtime.spawn("py")
    for f in files:
        handle.add_file(f)
    events = [event async for event in handle.run(instruction)]
    await handle.dispose()
    return handle, events


def test_text_protocol_completes_on_exit_zero(tmp_path: Path) -> None:
    runtime = _runtime(TEXT_AGENT, "text")
    _handle, events = asyncio.run(_collect(runtime, "AI! do it", ["a.py", "b.py"]))

    assert [e.type for e in events] == [
        AgentEventType.INFO,
        AgentEventType.INFO,
        AgentEventType.COMPLETED,
    ]
    assert events[0].message == "files: a.py,b.py"
    assert events[1].message == "chars: 9"


def test_text_protocol_nonzero_exit_is_error() -> None:
    runtime = _runtime(TEXT_AGENT, "text")
    handle, events = asyncio.run(_collect(runtime, "fail please", []))

    assert events[-1].type is AgentEventType.ERROR
    assert events[-1].data["exit_code"] == 3
    assert handle.returncode == 3


def test_jsonl_protocol_reports_events_and_shuts_down() -> None:
    runtime = _runtime(JSONL_AGENT, "jsonl")
    handle, events = asyncio.run(_collect(runtime, "AI! refactor", ["src/app.py"]))

    assert [(e.type, e.message) for e in events] == [
        (AgentEventType.INFO, "AI! refactor"),
        (AgentEventType.COMPLETED, "src/app.py"),
    ]
    assert handle.returncode == 0


def test_session_runs_in_configured_cwd(tmp_path: Path) -> None:
    script = "import os; print(os.getcwd())"
    runtime = SubprocessAgentRuntime(
        {"py": AgentConfig(command=[sys.executable, "-c", script])}, cwd=tmp_path
    )
    _handle, events = asyncio.run(_collect(runtime, "", []))

    assert Path(events[0].message).resolve() == tmp_path.resolve()


def test_spawn_unknown_or_unconfigured_agent() -> None:
    runtime = SubprocessAgentRuntime({"empty": AgentConfig()})

    with pytest.raises(AgentError, match="Unknown agent type"):
        runtime.spawn("missing")
    with pytest.raises(AgentError, match="No command configured"):
        runtime.spawn("empty")


def test_missing_executable_raises_agent_error(tmp_path: Path) -> None:
    runtime = SubprocessAgentRuntime(
        {"py": AgentConfig(command=[str(tmp_path / "no-such-agent")])}
    )

    with pytest.raises(AgentError, match="Failed to start"):
        asyncio.run(_collect(runtime, "x", []))


def test_handle_runs_only_once() -> None:
    runtime = _runtime(TEXT_AGENT, "text")

    async def main() -> None:
        handle = runtime.spawn("py")
        _ = [e async for e in handle.run("x")]
        with pytest.raises(AgentError, match="already executed"):
            _ = [e async for e in handle.run("x")]
        await handle.dispose()

    asyncio.run(main())


def test_dispose_without_run_is_noop() -> None:
    runtime = _runtime(TEXT_AGENT, "text")
    handle = runtime.spawn("py")
    asyncio.run(handle.dispose())
    assert handle.returncode is None


def test_oversized_output_line_fails_the_invocation(tmp_path: Path) -> None:
    target = tmp_path / "a.py"
    target.write_text("# AI! expand\n", encoding="utf-8")
    script = f"import sys\nsys.stdin.read()\nprint('x' * {STREAM_LIMIT * 2})\n"
    invoker = AgentInvoker(_runtime(script, "text"), timeout_s=30)
    trigger = scan(str(target), target.read_text(encoding="utf-8"))[0]

    with pytest.raises(AgentError, match="failed") as exc_info:
        asyncio.run(invoker.invoke(trigger, "py"))
    assert isinstance(exc_info.value.__cause__, ValueError)
