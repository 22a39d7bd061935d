"""Per-package service identity and file locations."""

from dataclasses import dataclass
from pathlib import Path

from tend.packages.models import PackageMetadata
from tend.service.base import ServiceBackend
from tend.service.context import RuntimeContext
from tend.service.definition import DefinitionFormat, read_definition


@dataclass(frozen=True)
class ServiceDescriptor:
    """Everything the lifecycle needs to know about one package's service.

    Built from package metadata whenever a command needs it and never
    persisted. The installed definition file is the only durable state:
    its existence means "registered for autostart".
    """

    name: str
    label: str
    package: PackageMetadata
    canonical_definition_path: Path
    installed_definition_path: Path
    boot_definition_path: Path
    user_definition_path: Path
    definition_format: DefinitionFormat

    @classmethod
    def from_package(
        cls, package: PackageMetadata, backend: ServiceBackend
    ) -> "ServiceDescriptor":
        label = backend.label_for(package.name)
        filename = backend.definition_filename(label)
        return cls(
            name=package.name,
            label=label,
            package=package,
            canonical_definition_path=package.prefix / filename,
            installed_definition_path=backend.managed_path / filename,
            boot_definition_path=backend.boot_path / filename,
            user_definition_path=backend.user_path / filename,
            definition_format=backend.definition_format,
        )

    @property
    def requires_privileged_start(self) -> bool:
        spec = self.package.service
        return spec.requires_root if spec else False

    @property
    def keep_alive(self) -> bool:
        spec = self.package.service
        return spec.keep_alive if spec else False

    @property
    def timed(self) -> bool:
        """Declared interval/cron schedule. Best-effort: launchd and systemd
        report nothing that distinguishes a waiting timer from a stopped job."""
        spec = self.package.service
        return spec.timed if spec else False

    @property
    def allow_privileged_run(self) -> bool:
        spec = self.package.service
        return spec.allow_privileged_run if spec else False

    @property
    def is_persisted(self) -> bool:
        """Whether `start` has installed a definition in the managed directory."""
        return self.installed_definition_path.exists()

    def other_scope_definition_path(self, context: RuntimeContext) -> Path:
        """The definition path of the privilege scope not currently active."""
        if context.is_root:
            return self.user_definition_path
        return self.boot_definition_path

    def definition_owner(self, path: Path, context: RuntimeContext) -> str | None:
        """Account a definition file runs its service as.

        An explicit user in the file wins; otherwise boot-directory files
        belong to root and user-directory files to the invoking user.
        """
        if not path.exists():
            return None
        try:
            declared = self.definition_format.owner(read_definition(path))
        except (OSError, ValueError):
            declared = None
        if declared:
            return declared
        if path == self.boot_definition_path:
            return "root"
        return context.user
