"""Tool discovery and registry for the remote tool-call surface.

Tools are plain Python functions with a @tool decorator.
Auto-discovered from the builtins directory at startup. No plugin system.
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
from pathlib import Path
from typing import Any

from termctl.shared.utils import setup_logging

logger = setup_logging("tools.registry")

# Global registry populated by the @tool decorator
_tool_staging: dict[str, dict] = {}


def tool(name: str, description: str, parameters: dict):
    """Decorator to register a function as a remote tool."""

    def decorator(func):
        _tool_staging[name] = {
            "name": name,
            "description": description,
            "parameters": parameters,
            "function": func,
        }
        return func

    return decorator


class ToolRegistry:
    """Auto-discovers and executes tools, injecting the session manager and its config."""

    def __init__(self, manager: Any = None):
        self.manager = manager
        self.tools: dict[str, dict] = {}
        self._discover_builtins()
        self.tools = dict(_tool_staging)

    def _discover_builtins(self) -> None:
        """Load all tool modules from the builtins package."""
        builtins_dir = Path(__file__).parent / "builtins"
        if not builtins_dir.exists():
            return
        self._load_modules_from(builtins_dir, label="builtin")

    def _load_modules_from(self, directory: Path, label: str) -> None:
        """Load all .py modules from a directory, registering decorated tools."""
        for py_file in sorted(directory.glob("**/*.py")):
            if py_file.name.startswith("_"):
                continue
            try:
                spec = importlib.util.spec_from_file_location(
                    f"termctl_{label}_{py_file.stem}", str(py_file),
                )
                if spec and spec.loader:
                    module = importlib.util.module_from_spec(spec)
                    spec.loader.exec_module(module)
            except Exception as e:
                logger.warning(f"Failed to load {label} {py_file}: {e}")

    async def execute(self, name: str, arguments: dict) -> Any:
        """Execute a tool by name with given arguments."""
        if name not in self.tools:
            raise ValueError(f"Unknown tool: {name}")

        func = self.tools[name]["function"]
        call_args = dict(arguments)

        sig = inspect.signature(func)
        if "manager" in sig.parameters:
            call_args["manager"] = self.manager
        if "config" in sig.parameters:
            call_args["config"] = getattr(self.manager, "config", None)

        if inspect.iscoroutinefunction(func):
            return await func(**call_args)
        return await asyncio.get_running_loop().run_in_executor(None, lambda: func(**call_args))

    def list_tools(self) -> list[str]:
        """Return list of available tool names."""
        return list(self.tools.keys())

    def get_descriptions(self) -> str:
        """Return human-readable descriptions of all tools."""
        lines = []
        for name, info in self.tools.items():
            params = ", ".join(f"{k}: {v.get('type', 'any')}" for k, v in info["parameters"].items())
            lines.append(f"- {name}({params}): {info['description']}")
        return "\n".join(lines)

    def get_tool_definitions(self) -> list[dict]:
        """Return OpenAI-compatible tool definitions for function calling."""
        tools = []
        for name, info in self.tools.items():
            properties = {}
            required = []
            for param_name, param_info in info["parameters"].items():
                properties[param_name] = {
                    "type": param_info.get("type", "string"),
                    "description": param_info.get("description", ""),
                }
                if "default" not in param_info:
                    required.append(param_name)

            tools.append({
                "type": "function",
                "function": {
                    "name": name,
                    "description": info["description"],
                    "parameters": {
                        "type": "object",
                        "properties": properties,
                        "required": required,
                    },
                },
            })
        return tools
