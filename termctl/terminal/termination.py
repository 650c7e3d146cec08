"""Termination controller: graceful signal, grace period, forceful kill.

Each attempt is its own small state machine (signal, wait, escalate,
confirm) and does not touch the session's status until exit is either
confirmed by the watcher or forced after escalation.
"""

from __future__ import annotations

from termctl.shared.types import TerminateResult
from termctl.shared.utils import setup_logging, wait_first
from termctl.terminal.processes import signal_process_tree
from termctl.terminal.registry import SessionRegistry
from termctl.terminal.session import Session

logger = setup_logging("terminal.termination")


class TerminationController:
    """Stops running sessions, escalating from SIGTERM to SIGKILL."""

    MIN_CONFIRM_WAIT = 0.5

    def __init__(self, registry: SessionRegistry, grace_period_ms: int = 1000):
        self.registry = registry
        self.grace_period_ms = grace_period_ms

    async def terminate(self, session_id: int) -> TerminateResult:
        """Terminate a session. Idempotent on sessions that already ended."""
        session = self.registry.get(session_id)
        if session.is_terminal:
            return TerminateResult(
                session_id=session.id, already_finished=True, status=session.status,
            )

        grace = self.grace_period_ms / 1000
        # Flagged only after delivery; a SignalError leaves the session untouched.
        sent = self._send(session, force=False)
        session.termination_requested = True

        if sent:
            logger.info(f"Sent SIGTERM to session {session.id} (pid {session.pid})")
            exited = await wait_first(session.done.wait(), timeout=grace)
        else:
            exited = session.is_terminal

        if not exited and not session.is_terminal:
            logger.warning(
                f"Session {session.id} still alive after {self.grace_period_ms}ms, sending SIGKILL"
            )
            self._send(session, force=True)
            await wait_first(session.done.wait(), timeout=max(grace, self.MIN_CONFIRM_WAIT))

        if not session.is_terminal:
            # Exit never confirmed (pipes held open, or the signal raced a
            # natural exit): record the outcome and release the handle.
            logger.warning(f"Session {session.id} exit not confirmed, marking terminated")
            self.registry.finish(session, "terminated")

        return TerminateResult(
            session_id=session.id, already_finished=False, status=session.status,
        )

    def _send(self, session: Session, force: bool) -> bool:
        if session.process is None or session.pid is None:
            return False
        return signal_process_tree(session.pid, force=force)
