"""FastAPI server exposing the session manager.

Endpoints:
  GET    /health                     - liveness + running session count
  GET    /tools                      - tool definitions for function calling
  POST   /tools/{name}               - run a tool with a JSON body of arguments
  POST   /execute                    - run a command (completes or backgrounds)
  GET    /sessions                   - running sessions (?include_finished=true for all)
  GET    /sessions/{id}/output       - new output since the last read (?wait_ms=)
  POST   /sessions/{id}/terminate    - stop a session
  GET    /processes                  - OS-wide process snapshot
  DELETE /processes/{pid}            - kill an arbitrary process (?force=true for SIGKILL)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, HTTPException, Request

from termctl.shared.errors import NotFoundError, SignalError, ValidationError
from termctl.shared.types import (
    ExecuteRequest,
    ExecuteResult,
    KillResult,
    ReadOutputResult,
    TerminateResult,
)
from termctl.shared.utils import setup_logging

if TYPE_CHECKING:
    from termctl.terminal.manager import SessionManager
    from termctl.tools.registry import ToolRegistry

logger = setup_logging("server")


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(404, str(e))
    if isinstance(e, SignalError):
        return HTTPException(409, str(e))
    return HTTPException(400, str(e))


def create_app(manager: SessionManager, tools: ToolRegistry | None = None) -> FastAPI:
    """Create the FastAPI application around one session manager."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await manager.shutdown()
        logger.info("Session manager shut down")

    app = FastAPI(title="termctl", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "running_sessions": len(manager.list_sessions())}

    @app.get("/tools")
    async def list_tools() -> dict:
        if tools is None:
            return {"tools": []}
        return {"tools": tools.get_tool_definitions()}

    @app.post("/tools/{name}")
    async def call_tool(name: str, request: Request) -> dict:
        """Run a tool. Tool-level failures come back as {"error": ...}."""
        if tools is None or name not in tools.tools:
            raise HTTPException(404, f"Unknown tool: {name}")
        body = await request.body()
        try:
            arguments = await request.json() if body else {}
        except ValueError as e:
            raise HTTPException(400, f"Invalid JSON body: {e}") from e
        if not isinstance(arguments, dict):
            raise HTTPException(400, "Tool arguments must be a JSON object")
        try:
            result = await tools.execute(name, arguments)
        except TypeError as e:
            raise HTTPException(400, f"Bad arguments for {name}: {e}") from e
        return {"tool": name, "result": result}

    @app.post("/execute", response_model=ExecuteResult)
    async def execute(req: ExecuteRequest) -> ExecuteResult:
        try:
            return await manager.execute(req.command, timeout_ms=req.timeout_ms, cwd=req.cwd)
        except ValidationError as e:
            raise _http_error(e) from e

    @app.get("/sessions")
    async def list_sessions(include_finished: bool = False) -> dict:
        sessions = manager.list_sessions(include_finished=include_finished)
        return {"sessions": [s.model_dump() for s in sessions]}

    @app.get("/sessions/{session_id}/output", response_model=ReadOutputResult)
    async def read_output(session_id: int, wait_ms: int | None = None) -> ReadOutputResult:
        try:
            return await manager.read_output(session_id, wait_ms=wait_ms)
        except (NotFoundError, ValidationError) as e:
            raise _http_error(e) from e

    @app.post("/sessions/{session_id}/terminate", response_model=TerminateResult)
    async def terminate(session_id: int) -> TerminateResult:
        try:
            return await manager.terminate(session_id)
        except (NotFoundError, SignalError) as e:
            raise _http_error(e) from e

    @app.get("/processes")
    async def list_processes() -> dict:
        procs = await manager.list_processes()
        return {"processes": [p.model_dump() for p in procs]}

    @app.delete("/processes/{pid}", response_model=KillResult)
    async def kill_process(pid: int, force: bool = False) -> KillResult:
        try:
            return await manager.kill_process(pid, force=force)
        except (NotFoundError, SignalError, ValidationError) as e:
            raise _http_error(e) from e

    return app
