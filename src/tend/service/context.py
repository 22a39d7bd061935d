"""Invocation context computed once per process."""

import getpass
import os
import platform
from dataclasses import dataclass
from pathlib import Path


def _parse_version(text: str) -> tuple[int, ...] | None:
    parts = []
    for piece in text.split("."):
        if not piece.isdigit():
            break
        parts.append(int(piece))
    return tuple(parts) or None


def _console_uid() -> int | None:
    try:
        return Path("/dev/console").stat().st_uid
    except OSError:
        return None


@dataclass(frozen=True)
class RuntimeContext:
    """Who is running tend, and where.

    Built once at startup and passed to every component, so nothing below
    the CLI reads process-global state.
    """

    uid: int
    euid: int
    user: str
    home: Path
    ssh_tty: bool = False
    sudo_user: str | None = None
    console_uid: int | None = None
    macos_version: tuple[int, ...] | None = None
    # launchd UserName to set when root starts a service for another account
    sudo_service_user: str | None = None

    @property
    def is_root(self) -> bool:
        return self.euid == 0

    @property
    def scope_name(self) -> str:
        return "root" if self.is_root else "user-space"

    @classmethod
    def detect(cls, sudo_service_user: str | None = None) -> "RuntimeContext":
        """Inspect the current process."""
        mac_version = platform.mac_ver()[0]
        return cls(
            uid=os.getuid(),
            euid=os.geteuid(),
            user=os.environ.get("USER") or getpass.getuser(),
            home=Path.home(),
            ssh_tty=bool(os.environ.get("SSH_TTY")),
            sudo_user=os.environ.get("SUDO_USER") or None,
            console_uid=_console_uid(),
            macos_version=_parse_version(mac_version) if mac_version else None,
            sudo_service_user=sudo_service_user,
        )
