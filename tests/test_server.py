"""Tests for the FastAPI surface over the session manager."""

from __future__ import annotations

import os

import pytest
from httpx import ASGITransport, AsyncClient

from termctl.server.app import create_app
from termctl.shared.types import TerminalConfig
from termctl.terminal.manager import SessionManager
from termctl.tools.registry import ToolRegistry

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX shell commands")


def _make_app(with_tools: bool = True) -> tuple:
    manager = SessionManager(TerminalConfig(
        shell="/bin/sh", blocked_commands=["rm", "shutdown"], grace_period_ms=300,
    ))
    tools = ToolRegistry(manager=manager) if with_tools else None
    return create_app(manager, tools), manager


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "running_sessions": 0}


@posix_only
class TestExecuteEndpoints:
    @pytest.mark.asyncio
    async def test_execute_completed(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.post("/execute", json={"command": "echo hello", "timeout_ms": 5000})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["stdout"] == "hello\n"
        assert data["exit_code"] == 0

    @pytest.mark.asyncio
    async def test_execute_blocked_is_400(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.post("/execute", json={"command": "sudo shutdown now"})
        assert resp.status_code == 400
        assert "shutdown" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_execute_missing_command_is_422(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.post("/execute", json={"timeout_ms": 10})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_session_lifecycle(self):
        app, manager = _make_app()
        async with _client(app) as client:
            resp = await client.post("/execute", json={"command": "sleep 30", "timeout_ms": 50})
            sid = resp.json()["session_id"]
            assert resp.json()["status"] == "running"

            resp = await client.get("/sessions")
            assert [s["session_id"] for s in resp.json()["sessions"]] == [sid]

            resp = await client.get(f"/sessions/{sid}/output", params={"wait_ms": 50})
            assert resp.status_code == 200
            assert resp.json()["status"] == "running"

            resp = await client.post(f"/sessions/{sid}/terminate")
            assert resp.status_code == 200
            assert resp.json()["status"] == "terminated"

            resp = await client.get("/sessions")
            assert resp.json()["sessions"] == []

            resp = await client.get("/sessions", params={"include_finished": "true"})
            assert [s["status"] for s in resp.json()["sessions"]] == ["terminated"]
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self):
        app, _ = _make_app()
        async with _client(app) as client:
            assert (await client.get("/sessions/99/output")).status_code == 404
            assert (await client.post("/sessions/99/terminate")).status_code == 404

    @pytest.mark.asyncio
    async def test_negative_wait_is_400(self):
        app, _ = _make_app()
        async with _client(app) as client:
            sid = (await client.post("/execute", json={"command": "true"})).json()["session_id"]
            resp = await client.get(f"/sessions/{sid}/output", params={"wait_ms": -1})
        assert resp.status_code == 400


class TestProcessEndpoints:
    @pytest.mark.asyncio
    async def test_list_processes(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.get("/processes")
        assert resp.status_code == 200
        assert any(p["pid"] == os.getpid() for p in resp.json()["processes"])

    @pytest.mark.asyncio
    async def test_kill_own_pid_is_400(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.delete(f"/processes/{os.getpid()}")
        assert resp.status_code == 400


class TestToolEndpoints:
    @pytest.mark.asyncio
    async def test_list_tools(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.get("/tools")
        names = {t["function"]["name"] for t in resp.json()["tools"]}
        assert {"execute_command", "read_output", "force_terminate", "list_sessions"} <= names

    @pytest.mark.asyncio
    async def test_no_tools_registry(self):
        app, _ = _make_app(with_tools=False)
        async with _client(app) as client:
            assert (await client.get("/tools")).json() == {"tools": []}
            assert (await client.post("/tools/get_config", json={})).status_code == 404

    @pytest.mark.asyncio
    async def test_call_tool(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.post("/tools/get_config", json={})
        assert resp.status_code == 200
        data = resp.json()
        assert data["tool"] == "get_config"
        assert data["result"]["shell"] == "/bin/sh"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_404(self):
        app, _ = _make_app()
        async with _client(app) as client:
            resp = await client.post("/tools/nope", json={})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_bodies_are_400(self):
        app, _ = _make_app()
        async with _client(app) as client:
            not_json = await client.post(
                "/tools/get_config", content=b"{not json",
                headers={"content-type": "application/json"},
            )
            not_object = await client.post("/tools/get_config", json=[1, 2])
            bad_args = await client.post("/tools/get_config", json={"unexpected": 1})
        assert not_json.status_code == 400
        assert not_object.status_code == 400
        assert bad_args.status_code == 400
