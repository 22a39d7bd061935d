"""Configuration module."""

from tend.config.loader import load_config
from tend.config.models import ConfigError, TendConfig
from tend.config.paths import (
    get_config_path,
    get_lock_path,
    get_run_path,
    get_staging_path,
    get_tend_home,
)

__all__ = [
    "ConfigError",
    "TendConfig",
    "get_config_path",
    "get_lock_path",
    "get_run_path",
    "get_staging_path",
    "get_tend_home",
    "load_config",
]
