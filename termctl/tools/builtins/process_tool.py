"""OS process tools: list and kill arbitrary processes."""

from __future__ import annotations

from termctl.shared.errors import NotFoundError, SignalError, ValidationError
from termctl.tools.registry import tool


@tool(
    name="list_processes",
    description=(
        "List all running processes. Returns pid, name, CPU usage and "
        "memory usage for every process visible to the server."
    ),
    parameters={},
)
async def list_processes(*, manager=None) -> dict:
    procs = await manager.list_processes()
    return {"processes": [p.model_dump() for p in procs]}


@tool(
    name="kill_process",
    description=(
        "Terminate a running process by PID. Use with caution: this can "
        "target any process, not only sessions started by execute_command."
    ),
    parameters={
        "pid": {"type": "integer", "description": "Process id to terminate"},
    },
)
async def kill_process(pid: int, *, manager=None) -> dict:
    try:
        result = await manager.kill_process(pid)
    except (NotFoundError, SignalError, ValidationError) as e:
        return {"error": str(e)}
    return result.model_dump()
