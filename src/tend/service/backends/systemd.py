"""systemd backend for Linux."""

import re
import signal
from pathlib import Path

from tend.service.base import RegistrationQuery, ServiceBackend
from tend.service.definition import UnitFormat
from tend.service.runner import CommandResult

# `systemctl status` exits 0 for active units and 3 for units that are
# loaded but inactive or failed
_STATUS_ACTIVE = 0
_STATUS_INACTIVE = 3


class SystemdBackend(ServiceBackend):
    """systemctl-driven backend.

    Units live in /usr/lib/systemd/system (root, --system) or
    ~/.config/systemd/user (user, --user).
    """

    executable_name = "systemctl"
    definition_format = UnitFormat()

    @property
    def name(self) -> str:
        return "systemd"

    @property
    def boot_path(self) -> Path:
        return Path("/usr/lib/systemd/system")

    @property
    def user_path(self) -> Path:
        return self.context.home / ".config" / "systemd" / "user"

    @property
    def default_privileged_group(self) -> str:
        return "root"

    def scope_args(self) -> list[str]:
        return ["--system" if self.context.is_root else "--user"]

    async def _systemctl(self, *args: str) -> CommandResult:
        return await self._run(*self.scope_args(), *args)

    async def query(self, label: str) -> RegistrationQuery | None:
        result = await self._systemctl("status", label)
        if result.returncode in (_STATUS_ACTIVE, _STATUS_INACTIVE) and result.output:
            return RegistrationQuery(
                text=result.output,
                source="systemctl",
                active=result.returncode == _STATUS_ACTIVE,
            )
        return None

    async def list_running_labels(self) -> set[str]:
        result = await self._systemctl(
            "list-units",
            "--type=service",
            "--state=running",
            "--no-pager",
            "--no-legend",
        )
        prefix = re.escape(self.config.label_prefix)
        pattern = re.compile(rf"({prefix}\.[\w+\-.@]+?)\.service\b")
        labels = set()
        for line in result.stdout.splitlines():
            if match := pattern.search(line):
                labels.add(match.group(1))
        return labels

    async def reload(self) -> CommandResult:
        return await self._systemctl("daemon-reload")

    async def install(
        self, label: str, definition_path: Path, enable_at_boot: bool
    ) -> CommandResult:
        if definition_path.parent != self.managed_path:
            # Ad hoc runs: expose the unit until the next reboot without persisting it
            linked = await self._systemctl("link", "--runtime", str(definition_path))
            if not linked.success:
                return linked
            await self.reload()

        started = await self._systemctl("start", label)
        if not started.success or not enable_at_boot:
            return started
        return await self._systemctl("enable", label)

    async def stop(self, label: str, definition_path: Path | None) -> CommandResult:
        stopped = await self._systemctl("stop", label)
        if stopped.success and definition_path is not None and definition_path.exists():
            await self._systemctl("disable", label)
        return stopped

    async def send_signal(self, label: str, sig: signal.Signals) -> CommandResult:
        return await self._systemctl("kill", f"--signal={sig.name}", label)
