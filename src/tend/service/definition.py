"""Service definition files: rendering, generation and atomic installation.

Definitions are opaque template text except for the rewrites applied on
every write: `{{identifier}}` template variables, the registration label,
and (launchd only) the `UserName` key.
"""

import os
import plistlib
import re
import shlex
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

from tend.packages.models import PackageMetadata

TEMPLATE_VAR_RE = re.compile(r"\{\{([a-z][a-z0-9_]*)\}\}", re.IGNORECASE)

DEFINITION_MODE = 0o644
BINARY_PLIST_MAGIC = b"bplist"

_CRON_KEYS = ("Minute", "Hour", "Day", "Month", "Weekday")


def substitute_template(text: str, package: PackageMetadata) -> str:
    """Replace `{{identifier}}` with the package's attribute of that name."""
    return TEMPLATE_VAR_RE.sub(lambda m: package.template_value(m.group(1)), text)


def cron_to_calendar_interval(cron: str) -> dict[str, int]:
    """Convert a 5-field cron expression to a launchd StartCalendarInterval.

    Only `*` and single integers are representable; anything else raises
    ValueError.
    """
    fields = cron.split()
    if len(fields) != 5:
        raise ValueError(f"cron must have 5 fields, got {cron!r}")
    interval: dict[str, int] = {}
    for key, value in zip(_CRON_KEYS, fields, strict=True):
        if value == "*":
            continue
        if not value.isdigit():
            raise ValueError(f"unsupported cron field {value!r} in {cron!r}")
        interval[key] = int(value)
    return interval


class DefinitionFormat(ABC):
    """Platform-specific knowledge of one definition file format."""

    suffix: str

    @abstractmethod
    def rewrite_label(self, text: str, label: str) -> str:
        """Force the registration label inside the file to `label`."""
        ...

    def apply_service_user(self, text: str, user: str | None) -> str:
        """Strip or set the per-account execution user."""
        return text

    @abstractmethod
    def owner(self, text: str) -> str | None:
        """Account the definition declares it runs as, if any."""
        ...

    @abstractmethod
    def program_location(self, text: str) -> tuple[str | None, str]:
        """Executable the definition runs and the key it came from."""
        ...

    @abstractmethod
    def generate(self, label: str, package: PackageMetadata, is_root: bool) -> str:
        """Render a definition from the package's ServiceSpec."""
        ...


class PlistFormat(DefinitionFormat):
    """launchd property lists."""

    suffix = ".plist"

    LABEL_RE = re.compile(r"(<key>Label</key>\s*<string>)[^<]*(</string>)")
    USER_NAME_RE = re.compile(r"\s*<key>UserName</key>\s*<string>[^<]*</string>")

    def rewrite_label(self, text: str, label: str) -> str:
        if self.LABEL_RE.search(text):
            return self.LABEL_RE.sub(
                lambda m: f"{m.group(1)}{escape(label)}{m.group(2)}", text, count=1
            )
        return text.replace(
            "<dict>",
            f"<dict>\n\t<key>Label</key>\n\t<string>{escape(label)}</string>",
            1,
        )

    def apply_service_user(self, text: str, user: str | None) -> str:
        # UserName conflicts with session-based activation; only keep an explicit override
        text = self.USER_NAME_RE.sub("", text)
        if not user:
            return text
        return self.LABEL_RE.sub(
            lambda m: (
                f"{m.group(0)}\n\t<key>UserName</key>\n\t<string>{escape(user)}</string>"
            ),
            text,
            count=1,
        )

    def _load(self, text: str) -> dict | None:
        try:
            data = plistlib.loads(text.encode())
        except (plistlib.InvalidFileException, ExpatError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def owner(self, text: str) -> str | None:
        data = self._load(text)
        if data is None:
            return None
        user = data.get("UserName")
        return user if isinstance(user, str) and user else None

    def program_location(self, text: str) -> tuple[str | None, str]:
        data = self._load(text)
        if data is None:
            return None, "ProgramArguments"
        arguments = data.get("ProgramArguments")
        if isinstance(arguments, list) and arguments and arguments[0]:
            return str(arguments[0]), "first ProgramArguments value"
        program = data.get("Program")
        return (str(program) if program else None), "Program"

    def generate(self, label: str, package: PackageMetadata, is_root: bool) -> str:
        spec = package.service
        command = package.command()
        if spec is None or not command:
            raise ValueError(f"{package.name} does not declare a service command")

        plist: dict = {
            "Label": label,
            "ProgramArguments": command,
            "RunAtLoad": spec.run_type == "immediate",
        }
        if spec.keep_alive:
            plist["KeepAlive"] = True
        if spec.run_type == "interval" and spec.interval:
            plist["StartInterval"] = spec.interval
        if spec.run_type == "cron" and spec.cron:
            plist["StartCalendarInterval"] = cron_to_calendar_interval(spec.cron)
        if working_dir := package.resolve_path(spec.working_dir):
            plist["WorkingDirectory"] = str(working_dir)
        if root_dir := package.resolve_path(spec.root_dir):
            plist["RootDirectory"] = str(root_dir)
        if log_path := package.resolve_path(spec.log_path):
            plist["StandardOutPath"] = str(log_path)
        if error_log_path := package.resolve_path(spec.error_log_path):
            plist["StandardErrorPath"] = str(error_log_path)
        if spec.environment:
            plist["EnvironmentVariables"] = dict(spec.environment)

        return plistlib.dumps(plist).decode()


class UnitFormat(DefinitionFormat):
    """systemd unit files."""

    suffix = ".service"

    EXEC_START_RE = re.compile(r"^\s*ExecStart\s*=\s*(.+)$", re.MULTILINE)
    USER_RE = re.compile(r"^\s*User\s*=\s*(\S+)\s*$", re.MULTILINE)

    def rewrite_label(self, text: str, label: str) -> str:
        # A unit's identity is its file name, which tend always derives from the label
        return text

    def owner(self, text: str) -> str | None:
        match = self.USER_RE.search(text)
        return match.group(1) if match else None

    def program_location(self, text: str) -> tuple[str | None, str]:
        match = self.EXEC_START_RE.search(text)
        if not match:
            return None, "ExecStart"
        try:
            tokens = shlex.split(match.group(1))
        except ValueError:
            return None, "ExecStart"
        if not tokens:
            return None, "ExecStart"
        # Strip systemd's executable prefixes (-, @, :, +, !)
        return tokens[0].lstrip("-@:+!") or None, "ExecStart"

    def generate(self, label: str, package: PackageMetadata, is_root: bool) -> str:
        spec = package.service
        command = package.command()
        if spec is None or not command:
            raise ValueError(f"{package.name} does not declare a service command")

        service_lines = [
            f"Type={'oneshot' if spec.timed else 'simple'}",
            f"ExecStart={shlex.join(command)}",
        ]
        if spec.keep_alive:
            service_lines.append("Restart=always")
        if working_dir := package.resolve_path(spec.working_dir):
            service_lines.append(f"WorkingDirectory={working_dir}")
        if root_dir := package.resolve_path(spec.root_dir):
            service_lines.append(f"RootDirectory={root_dir}")
        if log_path := package.resolve_path(spec.log_path):
            service_lines.append(f"StandardOutput=append:{log_path}")
        if error_log_path := package.resolve_path(spec.error_log_path):
            service_lines.append(f"StandardError=append:{error_log_path}")
        for key, value in spec.environment.items():
            service_lines.append(f'Environment="{key}={value}"')

        wanted_by = "multi-user.target" if is_root else "default.target"
        service_block = "\n".join(service_lines)
        return (
            "[Unit]\n"
            f"Description={label}\n"
            "\n"
            "[Service]\n"
            f"{service_block}\n"
            "\n"
            "[Install]\n"
            f"WantedBy={wanted_by}\n"
        )


def render_definition(
    source: str,
    *,
    label: str,
    package: PackageMetadata,
    fmt: DefinitionFormat,
    service_user: str | None = None,
) -> str:
    """Apply the substitutions every written definition goes through."""
    text = substitute_template(source, package)
    text = fmt.rewrite_label(text, label)
    return fmt.apply_service_user(text, service_user)


def read_definition(path: Path) -> str:
    """Read a definition file as text.

    Binary property lists are converted to their XML form so templating and
    label rewriting see the same text as for an XML plist.

    Raises:
        OSError: If the file can't be read.
        ValueError: If it is neither UTF-8 text nor a valid binary plist.
    """
    data = path.read_bytes()
    if data.startswith(BINARY_PLIST_MAGIC):
        data = plistlib.dumps(plistlib.loads(data), fmt=plistlib.FMT_XML)
    return data.decode("utf-8")


def write_definition(path: Path, content: str | bytes) -> None:
    """Write a definition atomically with mode 0644.

    Content goes to a temporary file in the destination directory first and
    is renamed over `path`, so readers never see a partial file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        if isinstance(content, str):
            content = content.encode("utf-8")
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, DEFINITION_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
