"""launchd backend for macOS."""

import logging
import signal
from pathlib import Path

from tend.service.base import RegistrationQuery, ServiceBackend
from tend.service.definition import PlistFormat
from tend.service.runner import CommandResult

logger = logging.getLogger(__name__)

# launchctl exits with EINPROGRESS while a bootout is still tearing the job down
BOOTOUT_IN_PROGRESS = 36

# bootstrap/bootout/enable/kill arrived with OS X 10.10
MODERN_LAUNCHCTL = (10, 10)


class LaunchdBackend(ServiceBackend):
    """launchctl-driven backend.

    Plists live in /Library/LaunchDaemons (root, started at boot) or
    ~/Library/LaunchAgents (user, started at login).
    """

    executable_name = "launchctl"
    definition_format = PlistFormat()

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._warned_domain = False

    @property
    def name(self) -> str:
        return "launchd"

    @property
    def boot_path(self) -> Path:
        return Path("/Library/LaunchDaemons")

    @property
    def user_path(self) -> Path:
        return self.context.home / "Library" / "LaunchAgents"

    @property
    def default_privileged_group(self) -> str:
        return "admin"

    @property
    def modern(self) -> bool:
        """Whether this macOS uses the bootstrap/bootout subcommands."""
        version = self.context.macos_version
        return version is None or version >= MODERN_LAUNCHCTL

    @property
    def domain_target(self) -> str:
        """launchd domain for the current invocation.

        The gui/<uid> domain needs a GUI login session; over SSH (without
        owning the console), through sudo, or with mismatched uids the
        per-user domain is used instead.
        """
        ctx = self.context
        if ctx.is_root:
            return "system"

        ssh_without_console = ctx.ssh_tty and ctx.console_uid != ctx.uid
        if ssh_without_console or ctx.sudo_user or ctx.uid != ctx.euid:
            if not self._warned_domain and not self.config.no_domain_warning:
                if ssh_without_console:
                    reason = "running over SSH without /dev/console ownership"
                elif ctx.sudo_user:
                    reason = "running through sudo"
                else:
                    reason = "uid and euid do not match"
                logger.warning(
                    "%s, using user/* instead of gui/* domain! "
                    "Hide this warning by setting TEND_NO_DOMAIN_WARNING.",
                    reason,
                )
                self._warned_domain = True
            return f"user/{ctx.euid}"

        return f"gui/{ctx.uid}"

    def scope_args(self) -> list[str]:
        return [self.domain_target]

    def service_target(self, label: str) -> str:
        return f"{self.domain_target}/{label}"

    async def query(self, label: str) -> RegistrationQuery | None:
        result = await self._run("list", label)
        if result.success and result.output:
            return RegistrationQuery(text=result.output, source="launchctl_list")

        if not self.modern:
            return None

        result = await self._run("print", self.service_target(label))
        if result.success and result.output:
            return RegistrationQuery(text=result.output, source="launchctl_print")
        return None

    async def list_running_labels(self) -> set[str]:
        result = await self._run("list")
        labels = set()
        prefix = f"{self.config.label_prefix}."
        # Rows are "PID<TAB>Status<TAB>Label"; PID is "-" when loaded but idle
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) < 3:
                continue
            label = parts[-1]
            if label.startswith(prefix):
                labels.add(label)
        return labels

    async def install(
        self, label: str, definition_path: Path, enable_at_boot: bool
    ) -> CommandResult:
        if not self.modern:
            if enable_at_boot:
                return await self._run("load", "-w", str(definition_path))
            return await self._run("load", str(definition_path))

        if enable_at_boot:
            enabled = await self._run("enable", self.service_target(label))
            if not enabled.success:
                return enabled
        return await self._run("bootstrap", self.domain_target, str(definition_path))

    async def stop(self, label: str, definition_path: Path | None) -> CommandResult:
        if self.modern:
            return await self._run("bootout", self.service_target(label))
        if definition_path is not None and definition_path.exists():
            return await self._run("unload", "-w", str(definition_path))
        return await self._run("remove", label)

    async def send_signal(self, label: str, sig: signal.Signals) -> CommandResult:
        if self.modern:
            return await self._run("kill", sig.name, self.service_target(label))
        if sig == signal.SIGKILL:
            return await self._run("remove", label)
        return await self._run("stop", label)

    def is_busy(self, result: CommandResult) -> bool:
        return result.returncode == BOOTOUT_IN_PROGRESS

