"""Data behind `tend list` and `tend info`."""

from pathlib import Path
from typing import Any

from rich.markup import escape
from rich.text import Text

from tend.service.base import OperationalStatus
from tend.service.context import RuntimeContext
from tend.service.descriptor import ServiceDescriptor
from tend.service.process import user_of_process
from tend.service.status import ServiceState, StatusResolver

COLUMN_MIN_WIDTHS = {"name": 4, "status": 7, "user": 4}

STATUS_STYLES = {
    OperationalStatus.STARTED: "green",
    OperationalStatus.SCHEDULED: "yellow",
    OperationalStatus.ERROR: "red",
    OperationalStatus.UNKNOWN: "yellow",
}


def service_user(
    descriptor: ServiceDescriptor, state: ServiceState, context: RuntimeContext
) -> str | None:
    """Who the service runs as, as observed rather than assumed."""
    if state.pid and descriptor.boot_definition_path.exists():
        return "root"
    if state.pid and descriptor.user_definition_path.exists():
        return user_of_process(state.pid) or context.user
    if state.loaded:
        return context.user
    return None


def service_file(descriptor: ServiceDescriptor, state: ServiceState) -> Path | None:
    if state.file_present:
        return descriptor.installed_definition_path
    if state.loaded and descriptor.canonical_definition_path.exists():
        return descriptor.canonical_definition_path
    return None


def format_status(status: OperationalStatus | str, exit_code: int | None = None) -> str:
    """Fixed status vocabulary; error carries its exit code."""
    value = status.value if isinstance(status, OperationalStatus) else status
    if value == OperationalStatus.ERROR.value and exit_code is not None:
        return f"error  {exit_code}"
    if value in {s.value for s in OperationalStatus}:
        return value
    return "other"


def abbreviate_home(path: Path | str | None, home: Path) -> str:
    if path is None:
        return ""
    text = str(path)
    home_text = str(home)
    if text == home_text or text.startswith(home_text + "/"):
        return "~" + text[len(home_text) :]
    return text


async def collect_rows(
    descriptors: list[ServiceDescriptor],
    resolver: StatusResolver,
    context: RuntimeContext,
) -> list[dict[str, Any]]:
    """One listing row per descriptor, freshly observed."""
    rows = []
    for descriptor in descriptors:
        state = await resolver.observe(descriptor)
        file = service_file(descriptor, state)
        rows.append(
            {
                "name": descriptor.name,
                "status": state.status.value,
                "user": service_user(descriptor, state, context),
                "file": str(file) if file else None,
                "exit_code": state.exit_code,
            }
        )
    return rows


def render_table(rows: list[dict[str, Any]], home: Path) -> list[Text]:
    """Name/Status/User/File lines padded to the longest value per column."""
    cells = [
        (
            row["name"],
            format_status(row["status"], row["exit_code"]),
            row["user"] or "",
            abbreviate_home(row["file"], home),
            row["status"],
        )
        for row in rows
    ]
    name_width = max([COLUMN_MIN_WIDTHS["name"], *(len(c[0]) for c in cells)])
    status_width = max([COLUMN_MIN_WIDTHS["status"], *(len(c[1]) for c in cells)])
    user_width = max([COLUMN_MIN_WIDTHS["user"], *(len(c[2]) for c in cells)])

    header = Text(
        f"{'Name':<{name_width}} {'Status':<{status_width}} "
        f"{'User':<{user_width}} File",
        style="bold underline",
    )
    lines = [header]
    for name, status_text, user, file, status in cells:
        line = Text(f"{name:<{name_width}} ")
        style = STATUS_STYLES.get(_as_status(status), "")
        line.append(f"{status_text:<{status_width}}", style=style)
        line.append(f" {user:<{user_width}} {file}".rstrip())
        lines.append(line)
    return lines


def _as_status(value: str) -> OperationalStatus | None:
    try:
        return OperationalStatus(value)
    except ValueError:
        return None


async def collect_info(
    descriptor: ServiceDescriptor,
    resolver: StatusResolver,
    context: RuntimeContext,
) -> dict[str, Any]:
    """Extended per-service record for `tend info`."""
    state = await resolver.observe(descriptor)
    package = descriptor.package
    spec = package.service
    file = service_file(descriptor, state)

    def resolved(value: str | None) -> str | None:
        path = package.resolve_path(value)
        return str(path) if path else None

    return {
        "name": descriptor.name,
        "service_name": descriptor.label,
        "running": state.running,
        "loaded": state.loaded,
        # Derived from the declared run_type, not reported by the manager
        "schedulable": descriptor.timed,
        "pid": state.pid,
        "exit_code": state.exit_code,
        "user": service_user(descriptor, state, context),
        "status": state.status.value,
        "file": str(file) if file else None,
        "command": package.manual_command(),
        "working_dir": resolved(spec.working_dir) if spec else None,
        "root_dir": resolved(spec.root_dir) if spec else None,
        "log_path": resolved(spec.log_path) if spec else None,
        "error_log_path": resolved(spec.error_log_path) if spec else None,
        "interval": spec.interval if spec else None,
        "cron": spec.cron if spec else None,
    }


def _mark(value: bool) -> str:
    return "[green]✔[/green]" if value else "[red]✘[/red]"


def info_lines(info: dict[str, Any], home: Path, verbose: bool = False) -> list[str]:
    """Rich-markup lines describing one service."""
    lines = [
        f"[bold]{escape(info['name'])}[/bold] ({escape(info['service_name'])})",
        f"Running: {_mark(info['running'])}",
        f"Loaded: {_mark(info['loaded'])}",
        f"Schedulable: {_mark(info['schedulable'])}",
    ]
    if info["running"]:
        lines.append(f"User: {info['user']}")
        lines.append(f"PID: {info['pid']}")
    if not verbose:
        return lines

    optional = [
        ("File", abbreviate_home(info["file"], home) or None),
        ("Command", info["command"]),
        ("Working directory", info["working_dir"]),
        ("Root directory", info["root_dir"]),
        ("Log", info["log_path"]),
        ("Error log", info["error_log_path"]),
        ("Interval", f"{info['interval']}s" if info["interval"] else None),
        ("Cron", info["cron"]),
    ]
    lines += [f"{label}: {escape(str(value))}" for label, value in optional if value]
    return lines
