"""Session registry: the single owner of all session state.

Allocates ids, performs terminal transitions, and evicts the oldest
finished sessions once more than ``max_finished`` are retained. Running
sessions are never evicted.
"""

from __future__ import annotations

import itertools

from termctl.shared.errors import NotFoundError
from termctl.shared.types import SessionInfo
from termctl.shared.utils import elapsed_ms, setup_logging, truncate
from termctl.terminal.session import Session

logger = setup_logging("terminal.registry")


class SessionRegistry:
    """Process-wide mapping of session id to Session."""

    def __init__(self, max_finished: int = 100, max_output_chars: int = 1_000_000):
        self.max_finished = max_finished
        self.max_output_chars = max_output_chars
        self._sessions: dict[int, Session] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self, command: str, shell: str, cwd: str, *, status: str = "running") -> Session:
        """Register a new session under a fresh id."""
        session = Session(
            id=next(self._ids),
            command=command,
            shell=shell,
            cwd=cwd,
            status=status,
            max_output_chars=self.max_output_chars,
        )
        self._sessions[session.id] = session
        return session

    def get(self, session_id: int) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"No session with id {session_id}")
        return session

    def find_by_pid(self, pid: int) -> Session | None:
        """Return the running session backed by *pid*, if any."""
        for session in self._sessions.values():
            if session.is_running and session.pid == pid:
                return session
        return None

    def running(self) -> list[Session]:
        return [s for s in self._sessions.values() if s.is_running]

    def all(self) -> list[Session]:
        return list(self._sessions.values())

    def finish(
        self,
        session: Session,
        status: str,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> bool:
        """Move a session to a terminal state, once. Returns False if already terminal."""
        if not session.finish(status, exit_code=exit_code, error=error):
            return False
        logger.info(
            f"Session {session.id} {status} "
            f"(exit_code={exit_code}, command={truncate(session.command, 80)!r})"
        )
        self._evict(keep=session)
        return True

    def _evict(self, keep: Session | None = None) -> None:
        finished = [s for s in self._sessions.values() if s.is_terminal and s is not keep]
        # The session that just finished always stays queryable.
        limit = self.max_finished - 1 if keep is not None else self.max_finished
        excess = len(finished) - max(limit, 0)
        if excess <= 0:
            return
        finished.sort(key=lambda s: (s.finished_at or 0.0, s.id))
        for session in finished[:excess]:
            del self._sessions[session.id]
            logger.debug(f"Evicted finished session {session.id}")

    def snapshot(self, include_finished: bool = False) -> list[SessionInfo]:
        """Point-in-time view; running sessions only unless asked otherwise."""
        out = []
        for session in self._sessions.values():
            if not include_finished and not session.is_running:
                continue
            out.append(SessionInfo(
                session_id=session.id,
                command=session.command,
                pid=session.pid if session.is_running else None,
                elapsed_ms=elapsed_ms(session.started_at, session.finished_at),
                status=session.status,
                exit_code=session.exit_code,
            ))
        return out
