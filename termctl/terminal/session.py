"""Session state: one spawned command, its output buffers and status.

Sessions are mutated only by the SessionRegistry, the exit watcher that
the executor starts, and the cursor reads of the output reader. All of
them run on the same event loop, so no locks are taken.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from termctl.shared.types import TERMINAL_STATUSES

TRUNCATION_MARKER = "[... {n} characters truncated ...]\n"


class OutputBuffer:
    """Append-only text stream with a bounded retained window.

    Offsets are absolute: ``start`` is the offset of the first retained
    character and ``end`` the offset after the last one. Text before
    ``start`` has been dropped to bound memory.
    """

    def __init__(self, max_chars: int = 1_000_000):
        self.max_chars = max_chars
        self._chunks: list[str] = []
        self._text = ""
        self._size = 0
        self.start = 0
        self.cursor = 0

    @property
    def end(self) -> int:
        return self.start + self._size

    def _compact(self) -> None:
        if self._chunks:
            self._text += "".join(self._chunks)
            self._chunks.clear()

    def append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self._size += len(text)
        if self._size > self.max_chars:
            self._compact()
            overflow = self._size - self.max_chars
            self._text = self._text[overflow:]
            self.start += overflow
            self._size = self.max_chars

    def has_unread(self) -> bool:
        return self.cursor < self.end

    def peek(self) -> str:
        """Return all retained text without moving the cursor."""
        self._compact()
        return self._text

    def take(self) -> str:
        """Return everything after the cursor and advance it to the end."""
        end = self.end
        if self.cursor >= end:
            return ""
        self._compact()
        prefix = ""
        if self.cursor < self.start:
            prefix = TRUNCATION_MARKER.format(n=self.start - self.cursor)
            self.cursor = self.start
        text = self._text[self.cursor - self.start:]
        self.cursor = end
        return prefix + text


@dataclass
class Session:
    id: int
    command: str
    shell: str
    cwd: str
    pid: int | None = None
    status: str = "running"
    exit_code: int | None = None
    error: str | None = None
    max_output_chars: int = 1_000_000
    started_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    termination_requested: bool = False
    kill_requested: bool = False
    process: Any = None
    watcher: asyncio.Task | None = None
    stdout: OutputBuffer = field(init=False)
    stderr: OutputBuffer = field(init=False)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    _waiters: set[asyncio.Future] = field(default_factory=set, repr=False)

    def __post_init__(self) -> None:
        self.stdout = OutputBuffer(self.max_output_chars)
        self.stderr = OutputBuffer(self.max_output_chars)
        if self.is_terminal:
            self.done.set()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    def append_output(self, stream: str, text: str) -> None:
        if not text:
            return
        buf = self.stdout if stream == "stdout" else self.stderr
        buf.append(text)
        self.last_activity_at = time.time()
        self.notify()

    def has_unread(self) -> bool:
        return self.stdout.has_unread() or self.stderr.has_unread()

    def take_output(self) -> tuple[str, str]:
        """Deliver the unread slice of both streams exactly once."""
        return self.stdout.take(), self.stderr.take()

    def notify(self) -> None:
        """Wake every reader waiting for activity on this session."""
        for fut in self._waiters:
            if not fut.done():
                fut.set_result(None)
        self._waiters.clear()

    async def wait_for_activity(self) -> None:
        """Suspend until new output arrives or the session ends."""
        if self.is_terminal:
            return
        fut = asyncio.get_running_loop().create_future()
        self._waiters.add(fut)
        try:
            await fut
        finally:
            self._waiters.discard(fut)

    def finish(self, status: str, exit_code: int | None = None, error: str | None = None) -> bool:
        """Perform the single terminal transition. Returns False if already terminal."""
        if self.is_terminal:
            return False
        self.status = status
        self.exit_code = exit_code
        if error is not None:
            self.error = error
        self.finished_at = time.time()
        self.process = None
        self.done.set()
        self.notify()
        return True
