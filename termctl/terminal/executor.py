"""Execution controller: validate, spawn, register, race exit against timeout.

Each spawned command gets a watcher task that pumps stdout/stderr into
the session buffers as chunks arrive and performs the terminal
transition when the process exits. ``execute`` only waits on the
session's completion signal, so a timeout leaves the watcher running
in the background untouched.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import subprocess

from termctl.shared.errors import SpawnError, ValidationError
from termctl.shared.types import ExecuteResult, TerminalConfig
from termctl.shared.utils import setup_logging, truncate, wait_first
from termctl.terminal.registry import SessionRegistry
from termctl.terminal.session import Session
from termctl.terminal.validator import assert_command_allowed, is_directory_allowed

logger = setup_logging("terminal.executor")


def shell_args(shell: str, command: str) -> list[str]:
    """Build the argv that runs *command* under *shell*."""
    name = os.path.basename(shell.replace("\\", "/")).lower()
    if name in ("cmd", "cmd.exe"):
        return [shell, "/d", "/s", "/c", command]
    if name.startswith(("powershell", "pwsh")):
        return [shell, "-NoProfile", "-NonInteractive", "-Command", command]
    return [shell, "-c", command]


def spawn_kwargs() -> dict:
    """Put the child in its own process group so the whole tree can be signalled."""
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def exit_status(session: Session, exit_code: int | None) -> str:
    """Terminal status for an exit the watcher observed.

    A kill-by-PID only counts when the process actually died of a signal
    (negative return code on POSIX), so a command that traps SIGTERM and
    later exits on its own is still ``completed``.
    """
    if session.termination_requested:
        return "terminated"
    if session.kill_requested and (os.name == "nt" or (exit_code is not None and exit_code < 0)):
        return "terminated"
    return "completed"


def _log_task_exception(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background session task failed: {exc!r}")


class CommandExecutor:
    """Spawns commands into sessions and races them against a timeout."""

    READ_CHUNK = 4096
    DRAIN_TIMEOUT = 1.0

    def __init__(self, registry: SessionRegistry, config: TerminalConfig):
        self.registry = registry
        self.config = config

    def resolve_cwd(self, cwd: str | None) -> str:
        """Expand and check the working directory against the allow-list."""
        path = cwd or self.config.default_cwd or os.getcwd()
        path = os.path.abspath(os.path.expanduser(path))
        if not is_directory_allowed(path, self.config.allowed_directories):
            raise ValidationError(
                f"Working directory not allowed: {path} "
                f"(allowed: {', '.join(self.config.allowed_directories)})"
            )
        return path

    async def execute(
        self, command: str, timeout_ms: int | None = None, cwd: str | None = None,
    ) -> ExecuteResult:
        """Run *command*; return its result, or a running handle on timeout."""
        if timeout_ms is None:
            timeout_ms = self.config.default_timeout_ms
        if timeout_ms < 0:
            raise ValidationError(f"timeout_ms must be >= 0, got {timeout_ms}")
        try:
            assert_command_allowed(command, self.config.blocked_commands)
        except ValidationError as e:
            logger.warning(f"Rejected command {truncate(command, 80)!r}: {e}")
            raise
        workdir = self.resolve_cwd(cwd)

        session = await self.spawn(command, workdir)
        if session.is_running:
            await wait_first(session.done.wait(), timeout=timeout_ms / 1000)

        stdout, stderr = session.take_output()
        return ExecuteResult(
            session_id=session.id,
            status=session.status,
            pid=session.pid if session.is_running else None,
            stdout=stdout,
            stderr=stderr,
            exit_code=session.exit_code,
            error=session.error,
        )

    async def spawn(self, command: str, workdir: str) -> Session:
        """Start the process and register its session immediately.

        Spawn failures produce a session that is already ``failed``.
        """
        shell = self.config.shell
        try:
            proc = await asyncio.create_subprocess_exec(
                *shell_args(shell, command),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=workdir,
                **spawn_kwargs(),
            )
        except OSError as e:
            err = SpawnError(e.errno, f"Failed to start {shell!r} in {workdir}: {e.strerror or e}")
            session = self.registry.create(command, shell, workdir)
            session.append_output("stderr", f"{err.strerror}\n")
            self.registry.finish(session, "failed", error=str(err.strerror))
            logger.warning(f"Spawn failed for session {session.id}: {err.strerror}")
            return session

        session = self.registry.create(command, shell, workdir)
        session.pid = proc.pid
        session.process = proc
        session.watcher = asyncio.create_task(self._watch(session, proc))
        session.watcher.add_done_callback(_log_task_exception)
        logger.info(
            f"Session {session.id} started pid={proc.pid} "
            f"command={truncate(command, 80)!r} cwd={workdir}"
        )
        return session

    async def _pump(self, session: Session, name: str, stream: asyncio.StreamReader) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await stream.read(self.READ_CHUNK)
                if not chunk:
                    session.append_output(name, decoder.decode(b"", final=True))
                    return
                session.append_output(name, decoder.decode(chunk))
        except (OSError, ValueError) as e:
            logger.warning(f"Session {session.id} {name} read failed: {e}")

    async def _watch(self, session: Session, proc: asyncio.subprocess.Process) -> None:
        """Pump output until exit, drain what is left, then finish the session."""
        readers = [
            asyncio.create_task(self._pump(session, "stdout", proc.stdout)),
            asyncio.create_task(self._pump(session, "stderr", proc.stderr)),
        ]
        try:
            exit_code = await proc.wait()
            # Descendants that inherited the pipes can keep them open past exit.
            await asyncio.wait(readers, timeout=self.DRAIN_TIMEOUT)
        except Exception as e:
            logger.error(f"Session {session.id} watcher failed: {e}")
            self.registry.finish(session, "failed", error=str(e))
            return
        finally:
            for task in readers:
                if not task.done():
                    task.cancel()

        self.registry.finish(session, exit_status(session, exit_code), exit_code=exit_code)
