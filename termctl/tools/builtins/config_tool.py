"""Read-only view of the effective server configuration."""

from __future__ import annotations

from termctl.tools.registry import tool


@tool(
    name="get_config",
    description=(
        "Get the effective server configuration: shell, blocked_commands, "
        "allowed_directories (empty means unrestricted), and timeouts."
    ),
    parameters={},
)
async def get_config(*, config=None) -> dict:
    return config.model_dump()
