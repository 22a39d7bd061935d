"""Abstract base for native service-manager backends."""

import re
import shutil
import signal
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tend.config.models import TendConfig
from tend.service.context import RuntimeContext
from tend.service.definition import DefinitionFormat
from tend.service.runner import CommandResult, CommandRunner, run_command


class OperationalStatus(Enum):
    """Derived service status; recomputed on every observation."""

    NONE = "none"
    STOPPED = "stopped"
    STARTED = "started"
    SCHEDULED = "scheduled"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RegistrationQuery:
    """Raw status text from the service manager and which query produced it."""

    text: str
    source: str  # launchctl_list | launchctl_print | systemctl
    # False when the manager still knows the label but holds nothing live
    # for it (an inactive or failed systemd unit)
    active: bool = True


class ServiceBackend(ABC):
    """Capability interface over one native service manager.

    Implementations wrap launchctl or systemctl. Every native call returns a
    CommandResult instead of raising; callers decide whether a failure
    matters by re-checking the state they wanted.
    """

    executable_name: str
    definition_format: DefinitionFormat

    def __init__(
        self,
        config: TendConfig,
        context: RuntimeContext,
        *,
        executable: str | None = None,
        runner: CommandRunner | None = None,
    ):
        self.config = config
        self.context = context
        self.executable = executable or self.probe() or self.executable_name
        self._runner = runner or run_command

    @classmethod
    def probe(cls) -> str | None:
        """Path to this backend's binary, or None if it is not installed."""
        return shutil.which(cls.executable_name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name ('launchd' or 'systemd')."""
        ...

    @property
    @abstractmethod
    def boot_path(self) -> Path:
        """Directory of definitions started at boot (privileged)."""
        ...

    @property
    @abstractmethod
    def user_path(self) -> Path:
        """Directory of definitions started at login (per user)."""
        ...

    @property
    def managed_path(self) -> Path:
        """The directory this invocation manages: boot when root, else user."""
        return self.boot_path if self.context.is_root else self.user_path

    @property
    @abstractmethod
    def default_privileged_group(self) -> str:
        ...

    @property
    def privileged_group(self) -> str:
        return self.config.privileged_group or self.default_privileged_group

    @property
    def definition_suffix(self) -> str:
        return self.definition_format.suffix

    def label_for(self, name: str) -> str:
        """Registration label for a package; stable and derived from the name only."""
        return f"{self.config.label_prefix}.{name}"

    def name_from_label(self, label_or_path: str) -> str | None:
        """Reverse label_for(); accepts bare labels and definition file names."""
        pattern = (
            rf"{re.escape(self.config.label_prefix)}\."
            r"([\w+\-.@]+?)(?:\.plist|\.service)?"
        )
        match = re.fullmatch(pattern, Path(label_or_path).name)
        return match.group(1) if match else None

    def definition_filename(self, label: str) -> str:
        return f"{label}{self.definition_suffix}"

    @abstractmethod
    def scope_args(self) -> list[str]:
        """Privilege-scope arguments for the current invocation."""
        ...

    async def _run(self, *args: str) -> CommandResult:
        return await self._runner([self.executable, *args])

    @abstractmethod
    async def query(self, label: str) -> RegistrationQuery | None:
        """Status text for a label, or None when the manager doesn't know it."""
        ...

    @abstractmethod
    async def list_running_labels(self) -> set[str]:
        """Labels under the configured prefix the manager reports as active.

        launchd reports every loaded job; systemd only running units.
        """
        ...

    @abstractmethod
    async def install(
        self, label: str, definition_path: Path, enable_at_boot: bool
    ) -> CommandResult:
        """Register and start a definition, optionally enabling autostart."""
        ...

    @abstractmethod
    async def stop(self, label: str, definition_path: Path | None) -> CommandResult:
        """Unregister a label."""
        ...

    @abstractmethod
    async def send_signal(self, label: str, sig: signal.Signals) -> CommandResult:
        """Signal a label's process without unregistering it."""
        ...

    async def reload(self) -> CommandResult | None:
        """Tell the manager that definition files changed, if it needs telling."""
        return None

    def is_busy(self, result: CommandResult) -> bool:
        """Whether a failed stop means 'still finishing, retry'."""
        return False

