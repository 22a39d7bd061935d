"""Centralized path management for tend.

Tool state (config, staging files, locks) lives under a single base directory.
The base directory can be overridden with the TEND_HOME environment variable.

Default location: ~/.tend
"""

import os
from pathlib import Path

ENV_VAR = "TEND_HOME"


def get_tend_home() -> Path:
    """Get the base directory for all tend state.

    Resolution order:
    1. TEND_HOME environment variable (if set)
    2. Platform default (~/.tend)

    Not cached: `sudo tend ...` and tests both change HOME between calls.
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".tend"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_tend_home() / "config.toml"


def get_run_path() -> Path:
    """Get the runtime directory path (staged definitions, locks)."""
    return get_tend_home() / "run"


def get_staging_path() -> Path:
    """Get the directory for definitions rendered for ad hoc runs."""
    return get_run_path() / "staged"


def get_lock_path() -> Path:
    """Get the directory holding per-label lock files."""
    return get_run_path() / "locks"
