"""Configuration models using Pydantic."""

import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_PREFIX = Path("/opt/tend")
DEFAULT_LABEL_PREFIX = "tend"

_LABEL_PREFIX_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*(\.[A-Za-z][A-Za-z0-9-]*)*$")


class ConfigError(Exception):
    """Configuration error."""

    pass


class TendConfig(BaseModel):
    """Root configuration model.

    Every field has a default so tend works without a config file.
    """

    # Installed packages live in <prefix>/opt/<name>/
    prefix: Path = DEFAULT_PREFIX
    # Service labels are <label_prefix>.<name>
    label_prefix: str = DEFAULT_LABEL_PREFIX
    # None = backend default (admin on launchd, root on systemd)
    privileged_group: str | None = None

    # Stop wait-loop; 0 attempts = poll until the manager reports unloaded
    stop_poll_interval: float = Field(default=1.0, ge=0)
    stop_max_attempts: int = Field(default=60, ge=0)

    # Kill wait-loop; escalates to SIGKILL after the first unconfirmed poll
    kill_poll_interval: float = Field(default=5.0, ge=0)
    kill_max_attempts: int = Field(default=6, ge=1)

    lock_operations: bool = True
    no_domain_warning: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("label_prefix")
    @classmethod
    def _validate_label_prefix(cls, value: str) -> str:
        if not _LABEL_PREFIX_RE.match(value):
            raise ValueError(
                f"label_prefix must be a dotted identifier (e.g. 'org.example'), got {value!r}"
            )
        return value

    @property
    def packages_path(self) -> Path:
        """Directory holding one installation prefix per package."""
        return self.prefix / "opt"
