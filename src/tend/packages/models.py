"""Package manifest models.

An installed package is a directory `<prefix>/opt/<name>/` containing a
`package.toml` manifest. The manifest may declare a structured `[service]`
table, a legacy raw `definition` template, or neither (in which case the
package only exposes a service if it ships a definition file).
"""

import shlex
from pathlib import Path
from typing import Literal

from croniter import croniter
from pydantic import BaseModel, Field, model_validator


class ServiceSpec(BaseModel):
    """Declarative description of a package's background service."""

    run: list[str] = Field(default_factory=list)
    run_type: Literal["immediate", "interval", "cron"] = "immediate"
    interval: int | None = Field(default=None, gt=0)
    cron: str | None = None
    keep_alive: bool = False
    requires_root: bool = False
    # Ad hoc `run` is refused under root unless the package opts in
    allow_privileged_run: bool = False
    working_dir: str | None = None
    root_dir: str | None = None
    log_path: str | None = None
    error_log_path: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_schedule(self) -> "ServiceSpec":
        if self.run_type == "interval" and self.interval is None:
            raise ValueError("run_type 'interval' requires 'interval'")
        if self.run_type == "cron":
            if self.cron is None:
                raise ValueError("run_type 'cron' requires 'cron'")
            if len(self.cron.split()) != 5:
                raise ValueError(f"cron must have 5 fields, got {self.cron!r}")
            if not croniter.is_valid(self.cron):
                raise ValueError(f"Invalid cron expression: {self.cron!r}")
        return self

    @property
    def timed(self) -> bool:
        """Whether the service runs on a schedule instead of continuously."""
        return self.run_type in ("interval", "cron")


class PackageManifest(BaseModel):
    """Contents of a package's package.toml."""

    name: str
    version: str | None = None
    # Legacy raw definition template (plist or unit text)
    definition: str | None = None
    service: ServiceSpec | None = None


class PackageMetadata:
    """Installed-package view consumed by the service layer.

    Public attributes double as template variables: `{{bin}}` in a
    definition template expands to `str(package.bin)`.
    """

    def __init__(self, name: str, prefix: Path, manifest: PackageManifest | None = None):
        self.name = name
        self.prefix = prefix
        self.manifest = manifest

    def __repr__(self) -> str:
        return f"PackageMetadata(name={self.name!r}, prefix={str(self.prefix)!r})"

    @property
    def opt_prefix(self) -> Path:
        """Installation prefix as templates name it: `{{opt_prefix}}`."""
        return self.prefix

    @property
    def version(self) -> str:
        if self.manifest is None or self.manifest.version is None:
            return ""
        return self.manifest.version

    @property
    def bin(self) -> Path:
        return self.prefix / "bin"

    @property
    def sbin(self) -> Path:
        return self.prefix / "sbin"

    @property
    def etc(self) -> Path:
        return self.prefix / "etc"

    @property
    def var(self) -> Path:
        return self.prefix / "var"

    @property
    def service(self) -> ServiceSpec | None:
        return self.manifest.service if self.manifest else None

    @property
    def definition_template(self) -> str | None:
        return self.manifest.definition if self.manifest else None

    @property
    def is_installed(self) -> bool:
        """True when the installation prefix holds a manifest."""
        return (self.prefix / "package.toml").is_file()

    @property
    def has_service(self) -> bool:
        """True when the package declares a service in its manifest."""
        return self.service is not None or self.definition_template is not None

    def resolve_path(self, value: str | None) -> Path | None:
        """Resolve a manifest path relative to the installation prefix."""
        if value is None:
            return None
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.prefix / path
        return path

    def command(self) -> list[str]:
        """The service command with its program resolved against the prefix."""
        if self.service is None or not self.service.run:
            return []
        program, *args = self.service.run
        resolved = self.resolve_path(program) if "/" in program else None
        return [str(resolved) if resolved else program, *args]

    def manual_command(self) -> str | None:
        """Shell command equivalent to running the service by hand."""
        spec = self.service
        command = self.command()
        if spec is None or not command:
            return None
        env = " ".join(
            f"{key}={shlex.quote(value)}" for key, value in spec.environment.items()
        )
        joined = shlex.join(command)
        return f"{env} {joined}" if env else joined

    def template_value(self, identifier: str) -> str:
        """Value for `{{identifier}}` in a definition template.

        Unknown identifiers, private names and methods expand to "".
        """
        if identifier.startswith("_"):
            return ""
        value = getattr(self, identifier, None)
        if value is None or callable(value):
            return ""
        return str(value)
