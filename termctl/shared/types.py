"""Pydantic models for configuration and every operation result.

This is the contract between the session manager, the tool catalogue,
the HTTP transport and the CLI. None of them share anything else.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

SessionStatus = Literal["running", "completed", "terminated", "failed"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "terminated", "failed"})

DEFAULT_BLOCKED_COMMANDS = [
    "mkfs", "format", "mount", "umount", "fdisk", "dd", "parted", "diskpart",
    "sudo", "su", "passwd", "adduser", "useradd", "usermod", "groupadd",
    "chsh", "visudo", "shutdown", "reboot", "halt", "poweroff", "init",
    "iptables", "firewall", "netsh", "sfc", "bcdedit", "reg", "net",
    "sc", "runas", "cipher", "takeown",
]


def _default_shell() -> str:
    if os.name == "nt":
        return "powershell.exe"
    return os.environ.get("SHELL") or "/bin/sh"


# === Configuration ===


class TerminalConfig(BaseModel):
    """Read-only settings consumed by the session manager."""

    shell: str = Field(default_factory=_default_shell)
    blocked_commands: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS))
    allowed_directories: list[str] = []
    default_cwd: Optional[str] = None
    default_timeout_ms: int = Field(default=30_000, ge=0)
    grace_period_ms: int = Field(default=1_000, ge=0)
    max_output_chars: int = Field(default=1_000_000, gt=0)
    max_finished_sessions: int = Field(default=100, ge=0)


# === Validation ===


class ValidationResult(BaseModel):
    """Outcome of the command blocklist gate."""

    allowed: bool
    reason: Optional[str] = None
    blocked: Optional[str] = None


# === Session operations ===


class ExecuteRequest(BaseModel):
    """Body of POST /execute."""

    command: str
    timeout_ms: Optional[int] = None
    cwd: Optional[str] = None


class ExecuteResult(BaseModel):
    """Returned by execute: either the final result or a background handle."""

    session_id: int
    status: SessionStatus
    pid: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    error: Optional[str] = None


class ReadOutputResult(BaseModel):
    """New output since the previous read, plus the session status."""

    session_id: int
    status: SessionStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None


class TerminateResult(BaseModel):
    session_id: int
    already_finished: bool
    status: SessionStatus


class SessionInfo(BaseModel):
    """Point-in-time snapshot of one tracked session."""

    session_id: int
    command: str
    pid: Optional[int] = None
    elapsed_ms: int = 0
    status: SessionStatus
    exit_code: Optional[int] = None


# === OS processes ===


class ProcessInfo(BaseModel):
    pid: int
    name: str = ""
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    command: str = ""


class KillResult(BaseModel):
    pid: int
    killed: bool = True
    signal: str = "SIGTERM"
    session_id: Optional[int] = None
