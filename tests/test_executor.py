"""Tests for command execution, the timeout race, and incremental output reads.

Covers:
- Completed: stdout/stderr/exit code captured before the timeout
- Running: timeout returns a session; output continues in the background
- Reads: exactly-once delivery, bounded waits, terminal status reporting
- Validation: blocked commands and disallowed directories never spawn
- Spawn failure: missing shell or cwd yields a failed session
"""

import asyncio
import os
import time

import pytest

from termctl.shared.errors import NotFoundError, ValidationError
from termctl.shared.types import TerminalConfig
from termctl.terminal.executor import exit_status, shell_args
from termctl.terminal.manager import SessionManager
from termctl.terminal.session import Session

pytestmark = pytest.mark.skipif(os.name == "nt", reason="POSIX shell commands")


def _manager(**overrides) -> SessionManager:
    cfg = {"shell": "/bin/sh", "blocked_commands": ["rm", "shutdown"], "grace_period_ms": 300}
    cfg.update(overrides)
    return SessionManager(TerminalConfig(**cfg))


async def _drain(manager: SessionManager, session_id: int, limit: float = 10.0) -> tuple[str, str, dict]:
    """Poll read_output until the session is terminal; return aggregated output."""
    out, err = [], []
    deadline = time.monotonic() + limit
    while True:
        res = await manager.read_output(session_id, wait_ms=200)
        out.append(res.stdout)
        err.append(res.stderr)
        if res.status != "running":
            return "".join(out), "".join(err), res.model_dump()
        assert time.monotonic() < deadline, "session did not finish in time"


# ── shell_args ───────────────────────────────────────────────


class TestShellArgs:
    def test_posix_shell(self):
        assert shell_args("/bin/bash", "ls") == ["/bin/bash", "-c", "ls"]

    def test_cmd(self):
        assert shell_args(r"C:\Windows\System32\cmd.exe", "dir")[-2:] == ["/c", "dir"]

    def test_powershell(self):
        argv = shell_args("pwsh", "Get-Process")
        assert argv[0] == "pwsh"
        assert argv[-2:] == ["-Command", "Get-Process"]


class TestExitStatus:
    def _session(self, **flags) -> Session:
        return Session(id=1, command="x", shell="/bin/sh", cwd="/tmp", **flags)

    def test_natural_exit_is_completed(self):
        assert exit_status(self._session(), 0) == "completed"
        assert exit_status(self._session(), -15) == "completed"

    def test_requested_termination_is_terminated(self):
        assert exit_status(self._session(termination_requested=True), 0) == "terminated"

    def test_kill_by_pid_needs_signal_death(self):
        assert exit_status(self._session(kill_requested=True), -15) == "terminated"
        assert exit_status(self._session(kill_requested=True), 0) == "completed"


# ── Completed within timeout ─────────────────────────────────


class TestExecuteCompleted:
    @pytest.mark.asyncio
    async def test_echo_hello(self):
        m = _manager()
        result = await m.execute("echo hello", timeout_ms=5000)
        assert result.status == "completed"
        assert result.stdout == "hello\n"
        assert result.stderr == ""
        assert result.exit_code == 0
        assert result.pid is None

    @pytest.mark.asyncio
    async def test_stderr_and_exit_code(self):
        m = _manager()
        result = await m.execute("echo oops >&2; exit 3", timeout_ms=5000)
        assert result.status == "completed"
        assert result.stderr == "oops\n"
        assert result.exit_code == 3

    @pytest.mark.asyncio
    async def test_command_not_found_is_completed_with_127(self):
        m = _manager()
        result = await m.execute("definitely-not-a-real-command-xyz", timeout_ms=5000)
        assert result.status == "completed"
        assert result.exit_code == 127
        assert result.stderr

    @pytest.mark.asyncio
    async def test_output_not_delivered_again(self):
        m = _manager()
        result = await m.execute("echo once", timeout_ms=5000)
        again = await m.read_output(result.session_id)
        assert again.stdout == ""
        assert again.status == "completed"
        assert again.exit_code == 0

    @pytest.mark.asyncio
    async def test_cwd_is_used(self, tmp_path):
        m = _manager()
        result = await m.execute("pwd", timeout_ms=5000, cwd=str(tmp_path))
        assert os.path.realpath(result.stdout.strip()) == os.path.realpath(str(tmp_path))

    @pytest.mark.asyncio
    async def test_completed_session_not_listed(self):
        m = _manager()
        await m.execute("true", timeout_ms=5000)
        assert m.list_sessions() == []


# ── Running past the timeout ─────────────────────────────────


class TestExecuteRunning:
    @pytest.mark.asyncio
    async def test_timeout_returns_running_session(self):
        m = _manager()
        result = await m.execute("sleep 0.5 && echo done", timeout_ms=100)
        assert result.status == "running"
        assert result.session_id == 1
        assert result.pid is not None
        assert [s.session_id for s in m.list_sessions()] == [result.session_id]

        out, _, final = await _drain(m, result.session_id)
        assert out == "done\n"
        assert final["status"] == "completed"
        assert final["exit_code"] == 0
        assert m.list_sessions() == []

    @pytest.mark.asyncio
    async def test_partial_output_returned_then_rest(self):
        m = _manager()
        result = await m.execute("echo first; sleep 0.5; echo second", timeout_ms=200)
        assert result.status == "running"
        assert result.stdout == "first\n"
        out, _, final = await _drain(m, result.session_id)
        assert out == "second\n"
        assert final["exit_code"] == 0

    @pytest.mark.asyncio
    async def test_aggregate_reads_reconstruct_output_in_order(self):
        m = _manager()
        script = "for i in 1 2 3 4 5 6 7 8; do echo line$i; sleep 0.05; done"
        result = await m.execute(script, timeout_ms=50)
        out, _, final = await _drain(m, result.session_id)
        full = result.stdout + out
        assert full == "".join(f"line{i}\n" for i in range(1, 9))
        assert final["status"] == "completed"

    @pytest.mark.asyncio
    async def test_session_ids_increase(self):
        m = _manager()
        a = await m.execute("sleep 0.3", timeout_ms=10)
        b = await m.execute("sleep 0.3", timeout_ms=10)
        assert b.session_id > a.session_id
        await m.shutdown()

    @pytest.mark.asyncio
    async def test_zero_timeout_returns_immediately(self):
        m = _manager()
        started = time.monotonic()
        result = await m.execute("sleep 2", timeout_ms=0)
        assert time.monotonic() - started < 1.0
        assert result.status == "running"
        await m.shutdown()


# ── read_output ──────────────────────────────────────────────


class TestReadOutput:
    @pytest.mark.asyncio
    async def test_unknown_session(self):
        m = _manager()
        with pytest.raises(NotFoundError):
            await m.read_output(999)

    @pytest.mark.asyncio
    async def test_negative_wait_rejected(self):
        m = _manager()
        result = await m.execute("true", timeout_ms=5000)
        with pytest.raises(ValidationError):
            await m.read_output(result.session_id, wait_ms=-1)

    @pytest.mark.asyncio
    async def test_wait_returns_early_on_new_output(self):
        m = _manager()
        result = await m.execute("sleep 0.2; echo tick; sleep 5", timeout_ms=10)
        started = time.monotonic()
        res = await m.read_output(result.session_id, wait_ms=3000)
        assert time.monotonic() - started < 2.0
        assert res.stdout == "tick\n"
        assert res.status == "running"
        assert res.exit_code is None
        await m.terminate(result.session_id)

    @pytest.mark.asyncio
    async def test_wait_bounded_when_nothing_new(self):
        m = _manager()
        result = await m.execute("sleep 5", timeout_ms=10)
        started = time.monotonic()
        res = await m.read_output(result.session_id, wait_ms=200)
        elapsed = time.monotonic() - started
        assert 0.15 <= elapsed < 1.5
        assert res.stdout == "" and res.stderr == ""
        assert res.status == "running"
        await m.terminate(result.session_id)

    @pytest.mark.asyncio
    async def test_concurrent_readers_never_duplicate(self):
        m = _manager()
        script = "for i in 1 2 3 4 5; do echo n$i; sleep 0.05; done"
        result = await m.execute(script, timeout_ms=10)
        collected = [result.stdout]

        async def reader():
            while True:
                res = await m.read_output(result.session_id, wait_ms=100)
                collected.append(res.stdout)
                if res.status != "running":
                    return

        await asyncio.wait_for(asyncio.gather(reader(), reader(), reader()), timeout=10)
        lines = "".join(collected).splitlines()
        assert sorted(lines) == sorted(f"n{i}" for i in range(1, 6))
        assert len(lines) == 5

    @pytest.mark.asyncio
    async def test_terminal_reads_are_idempotent(self):
        m = _manager()
        result = await m.execute("sleep 0.2; echo bye; exit 4", timeout_ms=10)
        _, _, final = await _drain(m, result.session_id)
        assert final["exit_code"] == 4
        for _ in range(2):
            res = await m.read_output(result.session_id)
            assert res.stdout == ""
            assert res.status == "completed"
            assert res.exit_code == 4

    @pytest.mark.asyncio
    async def test_output_truncated_with_marker(self):
        m = _manager(max_output_chars=100)
        result = await m.execute("i=0; while [ $i -lt 50 ]; do echo 0123456789; i=$((i+1)); done",
                                 timeout_ms=5000)
        assert result.status == "completed"
        assert result.stdout.startswith("[... 450 characters truncated ...]")
        assert result.stdout.endswith("0123456789\n")


# ── Validation ───────────────────────────────────────────────


class TestExecuteValidation:
    @pytest.mark.asyncio
    async def test_blocked_command_rejected_before_spawn(self):
        m = _manager()
        with pytest.raises(ValidationError, match="rm"):
            await m.execute("echo hi && rm -rf /tmp/nothing", timeout_ms=1000)
        assert len(m.registry) == 0

    @pytest.mark.asyncio
    async def test_disallowed_directory_rejected(self, tmp_path):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        m = _manager(allowed_directories=[str(allowed)])
        with pytest.raises(ValidationError, match="not allowed"):
            await m.execute("ls", timeout_ms=1000, cwd=str(tmp_path))
        assert len(m.registry) == 0

    @pytest.mark.asyncio
    async def test_allowed_directory_accepted(self, tmp_path):
        m = _manager(allowed_directories=[str(tmp_path)])
        result = await m.execute("echo ok", timeout_ms=5000, cwd=str(tmp_path))
        assert result.stdout == "ok\n"

    @pytest.mark.asyncio
    async def test_negative_timeout_rejected(self):
        m = _manager()
        with pytest.raises(ValidationError):
            await m.execute("true", timeout_ms=-5)


# ── Spawn failure ────────────────────────────────────────────


class TestSpawnFailure:
    @pytest.mark.asyncio
    async def test_missing_shell_yields_failed(self):
        m = _manager(shell="/nonexistent/shell")
        result = await m.execute("echo hi", timeout_ms=1000)
        assert result.status == "failed"
        assert result.pid is None
        assert result.error
        assert "/nonexistent/shell" in result.stderr
        assert m.list_sessions() == []
        res = await m.read_output(result.session_id)
        assert res.status == "failed"

    @pytest.mark.asyncio
    async def test_missing_cwd_yields_failed(self, tmp_path):
        m = _manager()
        result = await m.execute("echo hi", timeout_ms=1000, cwd=str(tmp_path / "gone"))
        assert result.status == "failed"
        assert result.exit_code is None
