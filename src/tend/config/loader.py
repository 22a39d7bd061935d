"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tend.config.models import ConfigError, TendConfig
from tend.config.paths import get_config_path

_TRUTHY = {"1", "true", "yes", "on"}


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("tend.toml"),  # Current directory
        get_config_path(),  # ~/.tend/config.toml (or TEND_HOME)
        Path("/etc/tend/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply TEND_* environment variables on top of file values."""
    if prefix := os.environ.get("TEND_PREFIX"):
        config["prefix"] = prefix
    if label_prefix := os.environ.get("TEND_LABEL_PREFIX"):
        config["label_prefix"] = label_prefix
    if os.environ.get("TEND_NO_DOMAIN_WARNING", "").lower() in _TRUTHY:
        config["no_domain_warning"] = True
    if level := os.environ.get("TEND_LOG_LEVEL"):
        config["log_level"] = level.upper()
    return config


def load_config(path: Path | None = None) -> TendConfig:
    """Load configuration from a TOML file.

    Unlike most settings files, the config is optional: when no file exists
    in the default locations, defaults (plus environment overrides) are used.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated TendConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    try:
        return TendConfig.model_validate(raw_config)
    except ValidationError as e:
        source = config_path or "environment"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e
