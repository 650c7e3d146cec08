"""CLI entry point for termctl.

Server:
  serve                    Start the HTTP tool server
  sessions [--all]         List sessions on a running server
  output <id>              Read new output from a server session
  terminate <id>           Stop a server session

Local:
  run <command>            Execute a command, following it if it outlives the timeout
  ps                       List OS processes
  kill <pid>               Terminate an OS process
  tools                    Show the tool catalogue

Configuration:
  config show              Print the effective configuration
  config set <key> <value> Update one key in the config file
  config block <name>      Add a blocked command pattern
  config unblock <name>    Remove a blocked command pattern
"""

from __future__ import annotations

import asyncio
import json
import logging
import os

import click
import yaml

from termctl.cli import config as cli_config
from termctl.cli.config import _suppress_library_logs, load_config, parse_value, save_config
from termctl.cli.formatting import (
    echo_output,
    format_processes,
    format_sessions,
    status_line,
)
from termctl.shared.errors import NotFoundError, SignalError, ValidationError

logger = logging.getLogger("cli")

DEFAULT_URL = "http://127.0.0.1:8765"

_url_option = click.option(
    "--url",
    default=lambda: os.environ.get("TERMCTL_URL", DEFAULT_URL),
    show_default=DEFAULT_URL,
    help="termctl server URL",
)


# ── Main group ───────────────────────────────────────────────

@click.group()
def cli():
    """termctl -- run and supervise shell commands for remote tool callers."""
    from dotenv import load_dotenv

    load_dotenv(cli_config.ENV_FILE)
    _suppress_library_logs()


# ── serve ────────────────────────────────────────────────────

@cli.command()
@click.option("--host", default=None, help="Bind address (default 127.0.0.1)")
@click.option("--port", default=None, type=int, help="Port (default 8765)")
def serve(host: str | None, port: int | None):
    """Start the HTTP tool server."""
    from termctl.server.__main__ import main as server_main

    server_main(host=host, port=port)


# ── run ──────────────────────────────────────────────────────

@cli.command()
@click.argument("command")
@click.option("--timeout-ms", default=None, type=int, help="Wait before backgrounding")
@click.option("--cwd", default=None, help="Working directory")
@click.option("--follow/--no-follow", default=True,
              help="Keep streaming after the timeout instead of stopping the command")
@click.pass_context
def run(ctx, command: str, timeout_ms: int | None, cwd: str | None, follow: bool):
    """Execute COMMAND locally through the session manager.

    \b
    Examples:
      termctl run "ls -la"
      termctl run "make test" --timeout-ms 1000
      termctl run "sleep 30" --timeout-ms 100 --no-follow
    """
    from termctl.terminal.manager import SessionManager

    async def _run() -> dict:
        manager = SessionManager(load_config())
        try:
            result = (await manager.execute(command, timeout_ms=timeout_ms, cwd=cwd)).model_dump()
            echo_output(result["stdout"], result["stderr"])
            if result["status"] != "running":
                return result
            if not follow:
                await manager.terminate(result["session_id"])
                return result
            while True:
                out = (await manager.read_output(result["session_id"], wait_ms=1000)).model_dump()
                echo_output(out["stdout"], out["stderr"])
                if out["status"] != "running":
                    return out
        finally:
            # Sessions live in their own process group; Ctrl-C must not orphan them.
            await manager.shutdown()

    try:
        final = asyncio.run(_run())
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(2)
        return
    click.echo(status_line(final), err=True)
    exit_code = final.get("exit_code")
    if final["status"] == "failed":
        ctx.exit(1)
    elif exit_code:
        ctx.exit(exit_code if 0 < exit_code < 256 else 1)


# ── remote session commands ─────────────────────────────────

def _request(method: str, url: str, **kwargs) -> dict | None:
    import httpx

    try:
        resp = httpx.request(method, url, timeout=kwargs.pop("timeout", 10), **kwargs)
    except httpx.ConnectError:
        click.echo("termctl server is not running. Start it first: termctl serve", err=True)
        return None
    except httpx.TimeoutException:
        click.echo("Request timed out.", err=True)
        return None
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        click.echo(f"Error: HTTP {resp.status_code}: {detail}", err=True)
        return None
    return resp.json()


@cli.command()
@click.option("--all", "include_finished", is_flag=True, help="Include finished sessions")
@_url_option
def sessions(include_finished: bool, url: str):
    """List sessions on a running server."""
    data = _request("GET", f"{url}/sessions", params={"include_finished": include_finished})
    if data is not None:
        click.echo(format_sessions(data["sessions"]))


@cli.command()
@click.argument("session_id", type=int)
@click.option("--wait-ms", default=0, type=int, help="Wait for new output")
@_url_option
def output(session_id: int, wait_ms: int, url: str):
    """Read new output from a server session."""
    params = {"wait_ms": wait_ms} if wait_ms else {}
    data = _request(
        "GET", f"{url}/sessions/{session_id}/output",
        params=params, timeout=10 + wait_ms / 1000,
    )
    if data is not None:
        echo_output(data["stdout"], data["stderr"])
        click.echo(status_line(data), err=True)


@cli.command()
@click.argument("session_id", type=int)
@_url_option
def terminate(session_id: int, url: str):
    """Stop a server session."""
    data = _request("POST", f"{url}/sessions/{session_id}/terminate", timeout=30)
    if data is None:
        return
    if data["already_finished"]:
        click.echo(f"Session {session_id} had already finished ({data['status']}).")
    else:
        click.echo(f"Session {session_id} {data['status']}.")


# ── processes ────────────────────────────────────────────────

@cli.command()
@click.option("--limit", default=25, type=int, help="Rows to show (0 for all)")
@click.option("--sort", "sort_key", default="cpu",
              type=click.Choice(["cpu", "memory", "pid"]), help="Sort order")
def ps(limit: int, sort_key: str):
    """List OS processes."""
    from termctl.terminal.processes import snapshot_processes

    procs = [p.model_dump() for p in snapshot_processes(sample_interval=0.2)]
    if sort_key == "cpu":
        procs.sort(key=lambda p: p["cpu_percent"], reverse=True)
    elif sort_key == "memory":
        procs.sort(key=lambda p: p["memory_percent"], reverse=True)
    if limit:
        procs = procs[:limit]
    click.echo(format_processes(procs))


@cli.command()
@click.argument("pid", type=int)
@click.option("--force", is_flag=True, help="Send SIGKILL instead of SIGTERM")
@click.pass_context
def kill(ctx, pid: int, force: bool):
    """Terminate an OS process by PID."""
    from termctl.terminal.processes import ProcessInspector
    from termctl.terminal.registry import SessionRegistry

    inspector = ProcessInspector(SessionRegistry())
    try:
        result = asyncio.run(inspector.kill_process(pid, force=force))
    except (NotFoundError, SignalError, ValidationError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
        return
    click.echo(f"Sent {result.signal} to process {pid}.")


# ── tools ────────────────────────────────────────────────────

@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print OpenAI-style definitions")
def tools(as_json: bool):
    """Show the tool catalogue."""
    from termctl.tools.registry import ToolRegistry

    registry = ToolRegistry()
    if as_json:
        click.echo(json.dumps(registry.get_tool_definitions(), indent=2))
    else:
        click.echo(registry.get_descriptions())


# ── config subgroup ──────────────────────────────────────────

@cli.group()
def config():
    """Inspect and update the termctl configuration."""


@config.command("show")
def config_show():
    """Print the effective configuration."""
    cfg = load_config()
    click.echo(f"# {cli_config.config_path()}")
    click.echo(yaml.dump(cfg.model_dump(), default_flow_style=False, sort_keys=False), nl=False)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Set KEY to VALUE. Lists are comma separated.

    \b
    Examples:
      termctl config set shell /bin/bash
      termctl config set allowed_directories /home/me/src,/tmp
      termctl config set allowed_directories ""
    """
    try:
        parsed = parse_value(key, value)
    except KeyError:
        click.echo(f"Unknown config key: {key}", err=True)
        ctx.exit(1)
        return
    except ValueError:
        click.echo(f"Invalid value for {key}: {value}", err=True)
        ctx.exit(1)
        return
    cfg = load_config().model_copy(update={key: parsed})
    path = save_config(cfg)
    click.echo(f"Saved {key} to {path}")


@config.command("block")
@click.argument("name")
def config_block(name: str):
    """Add NAME to the blocked command patterns."""
    cfg = load_config()
    if name in cfg.blocked_commands:
        click.echo(f"'{name}' is already blocked.")
        return
    cfg.blocked_commands.append(name)
    save_config(cfg)
    click.echo(f"Blocked '{name}'.")


@config.command("unblock")
@click.argument("name")
def config_unblock(name: str):
    """Remove NAME from the blocked command patterns."""
    cfg = load_config()
    if name not in cfg.blocked_commands:
        click.echo(f"'{name}' is not blocked.")
        return
    cfg.blocked_commands.remove(name)
    save_config(cfg)
    click.echo(f"Unblocked '{name}'.")
