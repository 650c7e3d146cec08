"""Session manager: one registry, one config, and the controllers around them.

This is the object the tool catalogue, the HTTP server and the CLI hold.
All controllers share the same injected registry; there is no module
level session state.
"""

from __future__ import annotations

from termctl.shared.errors import SignalError
from termctl.shared.types import (
    ExecuteResult,
    KillResult,
    ProcessInfo,
    ReadOutputResult,
    SessionInfo,
    TerminalConfig,
    TerminateResult,
)
from termctl.shared.utils import setup_logging
from termctl.terminal.executor import CommandExecutor
from termctl.terminal.processes import ProcessInspector
from termctl.terminal.reader import OutputReader
from termctl.terminal.registry import SessionRegistry
from termctl.terminal.termination import TerminationController

logger = setup_logging("terminal.manager")


class SessionManager:
    """Facade over execution, output reads, termination and process inspection."""

    def __init__(
        self,
        config: TerminalConfig | None = None,
        registry: SessionRegistry | None = None,
    ):
        self.config = config or TerminalConfig()
        self.registry = registry or SessionRegistry(
            max_finished=self.config.max_finished_sessions,
            max_output_chars=self.config.max_output_chars,
        )
        self.executor = CommandExecutor(self.registry, self.config)
        self.reader = OutputReader(self.registry)
        self.terminator = TerminationController(self.registry, self.config.grace_period_ms)
        self.inspector = ProcessInspector(self.registry)

    async def execute(
        self, command: str, timeout_ms: int | None = None, cwd: str | None = None,
    ) -> ExecuteResult:
        return await self.executor.execute(command, timeout_ms=timeout_ms, cwd=cwd)

    async def read_output(self, session_id: int, wait_ms: int | None = None) -> ReadOutputResult:
        return await self.reader.read(session_id, wait_ms=wait_ms)

    async def terminate(self, session_id: int) -> TerminateResult:
        return await self.terminator.terminate(session_id)

    def list_sessions(self, include_finished: bool = False) -> list[SessionInfo]:
        return self.registry.snapshot(include_finished=include_finished)

    async def list_processes(self, sample_interval: float = 0.0) -> list[ProcessInfo]:
        return await self.inspector.list_processes(sample_interval)

    async def kill_process(self, pid: int, force: bool = False) -> KillResult:
        return await self.inspector.kill_process(pid, force=force)

    async def shutdown(self) -> None:
        """Terminate every running session. Called when the server stops."""
        running = self.registry.running()
        if running:
            logger.info(f"Terminating {len(running)} running session(s) on shutdown")
        for session in running:
            try:
                await self.terminator.terminate(session.id)
            except SignalError as e:
                logger.error(f"Could not terminate session {session.id}: {e}")
