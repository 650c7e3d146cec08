"""Process inspector: OS-wide process listing and kill-by-PID via psutil.

Independent of the session registry except for one side effect: killing
a PID that backs a running session flags that session so its exit is
recorded as ``terminated``.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time

import psutil

from termctl.shared.errors import NotFoundError, SignalError, ValidationError
from termctl.shared.types import KillResult, ProcessInfo
from termctl.shared.utils import setup_logging
from termctl.terminal.registry import SessionRegistry

logger = setup_logging("terminal.processes")

_ATTRS = ["pid", "name", "cpu_percent", "memory_percent", "cmdline"]


def snapshot_processes(sample_interval: float = 0.0) -> list[ProcessInfo]:
    """Enumerate every visible process. Blocking; run it off the event loop.

    psutil reports 0.0 CPU on the first call for a process, so a positive
    *sample_interval* primes the counters and samples again after it.
    """
    if sample_interval > 0:
        for proc in psutil.process_iter():
            try:
                proc.cpu_percent(None)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        time.sleep(sample_interval)

    out: list[ProcessInfo] = []
    for proc in psutil.process_iter(_ATTRS, ad_value=None):
        try:
            info = proc.info
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        cmdline = info.get("cmdline") or []
        out.append(ProcessInfo(
            pid=info["pid"],
            name=info.get("name") or "",
            cpu_percent=float(info.get("cpu_percent") or 0.0),
            memory_percent=round(float(info.get("memory_percent") or 0.0), 2),
            command=" ".join(cmdline),
        ))
    out.sort(key=lambda p: p.pid)
    return out


def signal_process_tree(pid: int, force: bool = False) -> bool:
    """Signal a spawned command and all of its descendants.

    POSIX sessions lead their own process group, so the group is signalled
    directly. Elsewhere the tree is enumerated with psutil. Returns False
    when the process is already gone.
    """
    if os.name != "nt":
        sig = signal.SIGKILL if force else signal.SIGTERM
        try:
            os.killpg(pid, sig)
        except ProcessLookupError:
            return False
        except PermissionError as e:
            raise SignalError(f"Cannot signal process group {pid}: {e}") from e
        return True

    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return False
    for proc in procs:
        try:
            if force:
                proc.kill()
            else:
                proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            raise SignalError(f"Cannot signal process {proc.pid}: {e}") from e
    return True


class ProcessInspector:
    """OS-wide process view, usable for processes termctl never spawned."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def list_processes(self, sample_interval: float = 0.0) -> list[ProcessInfo]:
        return await asyncio.to_thread(snapshot_processes, sample_interval)

    async def kill_process(self, pid: int, force: bool = False) -> KillResult:
        """Send SIGTERM (or SIGKILL with *force*) to an arbitrary PID."""
        if pid <= 0:
            raise ValidationError(f"Invalid pid: {pid}")
        if pid == os.getpid():
            raise ValidationError("Refusing to kill the termctl process itself")

        try:
            proc = psutil.Process(pid)
            if force:
                proc.kill()
            else:
                proc.terminate()
        except psutil.NoSuchProcess as e:
            raise NotFoundError(f"No process with pid {pid}") from e
        except psutil.AccessDenied as e:
            raise SignalError(f"Permission denied to signal process {pid}") from e

        # Same event-loop step as the signal: the exit watcher cannot have
        # recorded the exit yet.
        session = self.registry.find_by_pid(pid)
        if session is not None:
            session.kill_requested = True
        sig_name = "SIGKILL" if force else "SIGTERM"
        logger.info(
            f"Sent {sig_name} to pid {pid}"
            + (f" (session {session.id})" if session else "")
        )
        return KillResult(
            pid=pid, killed=True, signal=sig_name,
            session_id=session.id if session else None,
        )
