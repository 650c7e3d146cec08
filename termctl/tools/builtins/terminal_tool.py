"""Terminal session tools: run commands, poll their output, stop them.

Commands that outlive their timeout keep running in the background as a
session. Poll with read_output and stop with force_terminate.
"""

from __future__ import annotations

from termctl.shared.errors import NotFoundError, SignalError, ValidationError
from termctl.tools.registry import tool


@tool(
    name="execute_command",
    description=(
        "Execute a terminal command with a timeout. If the command does not "
        "finish within timeout_ms it keeps running in the background and a "
        "session_id is returned; use read_output to get more output and "
        "force_terminate to stop it. Prefer absolute paths for cwd."
    ),
    parameters={
        "command": {"type": "string", "description": "Shell command line to execute"},
        "timeout_ms": {
            "type": "integer",
            "description": "Milliseconds to wait before returning a running session (default 30000)",
            "default": 30000,
        },
        "cwd": {
            "type": "string",
            "description": "Working directory (default: server working directory)",
            "default": None,
        },
    },
)
async def execute_command(
    command: str, timeout_ms: int = 30000, cwd: str | None = None, *, manager=None,
) -> dict:
    """Run a command and return its result or a running-session handle."""
    try:
        result = await manager.execute(command, timeout_ms=timeout_ms, cwd=cwd)
    except ValidationError as e:
        return {"error": str(e)}
    return result.model_dump()


@tool(
    name="read_output",
    description=(
        "Read new output from a running terminal session. Output is returned "
        "exactly once. Set timeout_ms to wait for new output from long "
        "running commands."
    ),
    parameters={
        "session_id": {"type": "integer", "description": "Session id from execute_command"},
        "timeout_ms": {
            "type": "integer",
            "description": "Max milliseconds to wait for new output (default 0: no wait)",
            "default": 0,
        },
    },
)
async def read_output(session_id: int, timeout_ms: int = 0, *, manager=None) -> dict:
    try:
        result = await manager.read_output(session_id, wait_ms=timeout_ms or None)
    except (NotFoundError, ValidationError) as e:
        return {"error": str(e)}
    return result.model_dump()


@tool(
    name="force_terminate",
    description="Force terminate a running terminal session (SIGTERM, then SIGKILL).",
    parameters={
        "session_id": {"type": "integer", "description": "Session id to terminate"},
    },
)
async def force_terminate(session_id: int, *, manager=None) -> dict:
    try:
        result = await manager.terminate(session_id)
    except (NotFoundError, SignalError) as e:
        return {"error": str(e)}
    return result.model_dump()


@tool(
    name="list_sessions",
    description="List all running terminal sessions with their pid and elapsed time.",
    parameters={},
)
async def list_sessions(*, manager=None) -> dict:
    return {"sessions": [s.model_dump() for s in manager.list_sessions()]}
