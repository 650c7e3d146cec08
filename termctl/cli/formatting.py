"""Display helpers: session and process tables, streamed command output."""

from __future__ import annotations

import click

from termctl.shared.utils import truncate


def echo_output(stdout: str, stderr: str) -> None:
    """Write command output to the matching terminal streams, unmodified."""
    if stdout:
        click.echo(stdout, nl=False)
    if stderr:
        click.echo(stderr, nl=False, err=True)


def format_elapsed(ms: int) -> str:
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, seconds = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m{seconds:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m"


def format_sessions(sessions: list[dict]) -> str:
    if not sessions:
        return "No active sessions."
    lines = [f"{'ID':>4}  {'PID':>7}  {'STATUS':<10}  {'ELAPSED':>8}  COMMAND"]
    for s in sessions:
        pid = s.get("pid") or "-"
        lines.append(
            f"{s['session_id']:>4}  {pid:>7}  {s['status']:<10}  "
            f"{format_elapsed(s.get('elapsed_ms', 0)):>8}  {truncate(s['command'], 60)}"
        )
    return "\n".join(lines)


def format_processes(processes: list[dict]) -> str:
    if not processes:
        return "No processes."
    lines = [f"{'PID':>7}  {'CPU%':>6}  {'MEM%':>6}  NAME"]
    for p in processes:
        lines.append(
            f"{p['pid']:>7}  {p['cpu_percent']:>6.1f}  {p['memory_percent']:>6.2f}  "
            f"{truncate(p['name'] or p.get('command', ''), 50)}"
        )
    return "\n".join(lines)


def status_line(result: dict) -> str:
    """Trailer printed after a command leaves the running state."""
    status = result["status"]
    if status == "running":
        return f"[session {result['session_id']} still running]"
    if result.get("exit_code") is not None:
        return f"[session {result['session_id']} {status}, exit code {result['exit_code']}]"
    return f"[session {result['session_id']} {status}]"
