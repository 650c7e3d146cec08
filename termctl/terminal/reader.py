"""Output reader: incremental, exactly-once reads of session output."""

from __future__ import annotations

from termctl.shared.errors import ValidationError
from termctl.shared.types import ReadOutputResult
from termctl.shared.utils import wait_first
from termctl.terminal.registry import SessionRegistry


class OutputReader:
    """Serves new output after each session's delivery cursor."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def read(self, session_id: int, wait_ms: int | None = None) -> ReadOutputResult:
        """Return output produced since the last read and advance the cursor.

        When the session is running with nothing unread, waits up to
        *wait_ms* for new output or for the session to end.
        """
        if wait_ms is not None and wait_ms < 0:
            raise ValidationError(f"wait_ms must be >= 0, got {wait_ms}")
        session = self.registry.get(session_id)

        if wait_ms and session.is_running and not session.has_unread():
            await wait_first(session.wait_for_activity(), timeout=wait_ms / 1000)

        # No await between slicing and returning: concurrent readers never
        # see the same bytes.
        stdout, stderr = session.take_output()
        return ReadOutputResult(
            session_id=session.id,
            status=session.status,
            stdout=stdout,
            stderr=stderr,
            exit_code=session.exit_code if session.is_terminal else None,
        )
