"""Configuration loading and persistence for termctl.

Precedence, lowest first: built-in defaults, the YAML config file,
environment overrides. The session manager only ever reads the result.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from termctl.shared.types import TerminalConfig

logger = logging.getLogger("cli")

# ── Path constants ──────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
CONFIG_FILE = PROJECT_ROOT / "config" / "termctl.yaml"

# Keys `config set` accepts, and how their values are parsed.
LIST_KEYS = ("blocked_commands", "allowed_directories")
INT_KEYS = (
    "default_timeout_ms", "grace_period_ms", "max_output_chars", "max_finished_sessions",
)
STR_KEYS = ("shell", "default_cwd")


def config_path() -> Path:
    """Config file location, overridable with TERMCTL_CONFIG."""
    override = os.environ.get("TERMCTL_CONFIG")
    return Path(override) if override else CONFIG_FILE


def _split_paths(value: str) -> list[str]:
    sep = ";" if ";" in value or os.name == "nt" else ":"
    return [p.strip() for p in value.split(sep) if p.strip()]


def _load_raw(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring malformed config file: {path}")
        return {}
    return data.get("terminal", data)


def load_config(path: Path | None = None) -> TerminalConfig:
    """Build the effective TerminalConfig."""
    data = _load_raw(path or config_path())

    if shell := os.environ.get("TERMCTL_SHELL"):
        data["shell"] = shell
    if dirs := os.environ.get("TERMCTL_ALLOWED_DIRECTORIES"):
        data["allowed_directories"] = _split_paths(dirs)

    return TerminalConfig(**data)


def save_config(cfg: TerminalConfig, path: Path | None = None) -> Path:
    """Write the config under a top-level ``terminal`` key."""
    target = path or config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        yaml.dump({"terminal": cfg.model_dump()}, f, default_flow_style=False, sort_keys=False)
    return target


def parse_value(key: str, raw: str):
    """Parse a CLI string into the type a config key expects."""
    if key in LIST_KEYS:
        return [item.strip() for item in raw.split(",") if item.strip()]
    if key in INT_KEYS:
        return int(raw)
    if key == "default_cwd":
        return raw or None
    if key in STR_KEYS:
        return raw
    raise KeyError(key)


def _suppress_library_logs() -> None:
    """Set termctl loggers to WARNING for clean CLI output."""
    for name in [
        "terminal.executor", "terminal.registry", "terminal.termination",
        "terminal.processes", "terminal.manager", "tools.registry",
    ]:
        logging.getLogger(name).setLevel(logging.WARNING)
