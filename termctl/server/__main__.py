"""Server entry point.

Reads configuration from the YAML file and environment variables, wires
all components, and starts the FastAPI server.
"""

from __future__ import annotations

import os
import sys

import uvicorn

from termctl.cli.config import load_config
from termctl.server.app import create_app
from termctl.shared.utils import setup_logging
from termctl.terminal.manager import SessionManager
from termctl.tools.registry import ToolRegistry

logger = setup_logging("server.main")


def build_app():
    """Wire config, manager, tools and app. Separate from main() for tests."""
    config = load_config()
    manager = SessionManager(config)
    tools = ToolRegistry(manager=manager)
    logger.info(
        f"termctl ready: shell={config.shell} tools={len(tools.list_tools())} "
        f"blocked={len(config.blocked_commands)} allowed_dirs={config.allowed_directories or 'any'}"
    )
    return create_app(manager, tools)


def main(host: str | None = None, port: int | None = None) -> None:
    host = host or os.environ.get("TERMCTL_HOST", "127.0.0.1")
    port = port or int(os.environ.get("TERMCTL_PORT", "8765"))
    uvicorn.run(build_app(), host=host, port=port)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logger.error(f"termctl server failed to start: {e}")
        sys.exit(1)
