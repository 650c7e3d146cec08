"""CLI package for termctl.

Re-exports for tests and the pyproject.toml entry point.
"""

from termctl.cli.config import (  # noqa: F401
    CONFIG_FILE,
    ENV_FILE,
    PROJECT_ROOT,
    config_path,
    load_config,
    save_config,
)
from termctl.cli.main import cli  # noqa: F401
