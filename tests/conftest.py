"""Shared test fixtures and factories."""

import signal
from collections.abc import Sequence
from pathlib import Path

import pytest

from tend.config.models import TendConfig
from tend.packages.registry import PackageRegistry
from tend.service.base import RegistrationQuery, ServiceBackend
from tend.service.context import RuntimeContext
from tend.service.controller import ServiceController
from tend.service.definition import PlistFormat
from tend.service.runner import CommandResult

LABEL_PREFIX = "org.tool"

PLIST_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
\t<key>Label</key>
\t<string>com.example.original</string>
\t<key>ProgramArguments</key>
\t<array>
\t\t<string>{{bin}}/{{name}}d</string>
\t</array>
\t<key>RunAtLoad</key>
\t<true/>
</dict>
</plist>
"""


# =============================================================================
# Fake Backend
# =============================================================================


class FakeBackend(ServiceBackend):
    """In-memory service manager that records every native call.

    Registrations map label -> {"pid": int | None, "exit_code": int | None}.
    Status text is rendered in `launchctl list <label>` format.
    """

    executable_name = "fake-ctl"
    definition_format = PlistFormat()

    def __init__(self, config: TendConfig, context: RuntimeContext, root: Path):
        super().__init__(config, context, executable="fake-ctl")
        self._root = root
        self.registrations: dict[str, dict[str, int | None]] = {}
        self.calls: list[tuple] = []
        self.next_pid = 4242
        # Number of stop calls answered with "still finishing" before succeeding
        self.busy_stops = 0
        # Labels whose stop never takes effect
        self.stubborn: set[str] = set()
        # Labels whose process ignores SIGTERM
        self.term_resistant: set[str] = set()
        # Labels whose install fails
        self.failing_installs: set[str] = set()

    @property
    def name(self) -> str:
        return "fake"

    @property
    def boot_path(self) -> Path:
        return self._root / "LaunchDaemons"

    @property
    def user_path(self) -> Path:
        return self._root / "LaunchAgents"

    @property
    def default_privileged_group(self) -> str:
        return "wheel"

    def scope_args(self) -> list[str]:
        return ["system" if self.context.is_root else f"gui/{self.context.uid}"]

    def register(
        self, label: str, pid: int | None = None, exit_code: int | None = None
    ) -> None:
        self.registrations[label] = {"pid": pid, "exit_code": exit_code}

    def calls_for(self, label: str) -> list[tuple]:
        return [call for call in self.calls if len(call) > 1 and call[1] == label]

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _result(self, *argv: str, returncode: int = 0) -> CommandResult:
        return CommandResult(argv=("fake-ctl", *argv), returncode=returncode)

    async def query(self, label: str) -> RegistrationQuery | None:
        self.calls.append(("query", label))
        registration = self.registrations.get(label)
        if registration is None:
            return None
        lines = ["{", f'\t"Label" = "{label}";']
        if registration["pid"] is not None:
            lines.append(f'\t"PID" = {registration["pid"]};')
        if registration["exit_code"] is not None:
            lines.append(f'\t"LastExitStatus" = {registration["exit_code"]};')
        lines.append("};")
        return RegistrationQuery(text="\n".join(lines), source="launchctl_list")

    async def list_running_labels(self) -> set[str]:
        self.calls.append(("list_running",))
        return set(self.registrations)

    async def install(
        self, label: str, definition_path: Path, enable_at_boot: bool
    ) -> CommandResult:
        self.calls.append(("install", label, definition_path, enable_at_boot))
        if label in self.failing_installs:
            return self._result("bootstrap", label, returncode=5)
        self.register(label, pid=self.next_pid)
        return self._result("bootstrap", label)

    async def stop(self, label: str, definition_path: Path | None) -> CommandResult:
        self.calls.append(("stop", label, definition_path))
        if label in self.stubborn:
            return self._result("bootout", label, returncode=1)
        if self.busy_stops:
            self.busy_stops -= 1
            return self._result("bootout", label, returncode=36)
        if self.registrations.pop(label, None) is None:
            return self._result("bootout", label, returncode=3)
        return self._result("bootout", label)

    async def send_signal(self, label: str, sig: signal.Signals) -> CommandResult:
        self.calls.append(("signal", label, sig))
        registration = self.registrations.get(label)
        if registration is None:
            return self._result("kill", label, returncode=3)
        if sig == signal.SIGKILL or label not in self.term_resistant:
            registration["pid"] = None
            registration["exit_code"] = 0 if sig == signal.SIGTERM else 9
        return self._result("kill", label)

    async def reload(self) -> CommandResult:
        self.calls.append(("reload",))
        return self._result("reload")

    def is_busy(self, result: CommandResult) -> bool:
        return result.returncode == 36


# =============================================================================
# Scripted Runner
# =============================================================================


class ScriptedRunner:
    """Command runner that answers from a script and records argv.

    Responses match on the arguments after the executable; the first
    registered response whose args are a prefix of the call wins. Unmatched
    calls succeed with no output.
    """

    def __init__(self):
        self.calls: list[tuple[str, ...]] = []
        self._responses: list[tuple[tuple[str, ...], CommandResult]] = []

    def add(
        self, *args: str, returncode: int = 0, stdout: str = "", stderr: str = ""
    ) -> None:
        self._responses.append(
            (
                args,
                CommandResult(
                    argv=args, returncode=returncode, stdout=stdout, stderr=stderr
                ),
            )
        )

    @property
    def commands(self) -> list[tuple[str, ...]]:
        """Recorded calls without the executable."""
        return [call[1:] for call in self.calls]

    async def __call__(self, argv: Sequence[str]) -> CommandResult:
        call = tuple(argv)
        self.calls.append(call)
        args = call[1:]
        for prefix, result in self._responses:
            if args[: len(prefix)] == prefix:
                return CommandResult(
                    argv=call,
                    returncode=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )
        return CommandResult(argv=call, returncode=0)


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def tend_home(tmp_path: Path, monkeypatch) -> Path:
    """Point TEND_HOME at a temporary directory for every test."""
    home = tmp_path / "tend-home"
    monkeypatch.setenv("TEND_HOME", str(home))
    for var in (
        "TEND_PREFIX",
        "TEND_LABEL_PREFIX",
        "TEND_NO_DOMAIN_WARNING",
        "TEND_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def config(tmp_path: Path) -> TendConfig:
    """Configuration with instant polling."""
    return TendConfig(
        prefix=tmp_path / "prefix",
        label_prefix=LABEL_PREFIX,
        stop_poll_interval=0,
        stop_max_attempts=3,
        kill_poll_interval=0,
        kill_max_attempts=3,
    )


@pytest.fixture
def user_context(tmp_path: Path) -> RuntimeContext:
    home = tmp_path / "home"
    home.mkdir()
    return RuntimeContext(uid=501, euid=501, user="alice", home=home)


@pytest.fixture
def root_context(tmp_path: Path) -> RuntimeContext:
    home = tmp_path / "root-home"
    home.mkdir()
    return RuntimeContext(uid=0, euid=0, user="root", home=home)


@pytest.fixture
def backend(config: TendConfig, user_context: RuntimeContext, tmp_path: Path) -> FakeBackend:
    return FakeBackend(config, user_context, tmp_path / "managers")


@pytest.fixture
def root_backend(
    config: TendConfig, root_context: RuntimeContext, tmp_path: Path
) -> FakeBackend:
    return FakeBackend(config, root_context, tmp_path / "managers")


@pytest.fixture
def registry(config: TendConfig) -> PackageRegistry:
    return PackageRegistry(config.packages_path)


@pytest.fixture
def controller(
    backend: FakeBackend, config: TendConfig, user_context: RuntimeContext
) -> ServiceController:
    return ServiceController(backend, config, user_context)


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


# =============================================================================
# Package Factories
# =============================================================================


@pytest.fixture
def make_package(config: TendConfig):
    """Factory writing `<prefix>/opt/<name>/package.toml` (and optionally a
    shipped definition file)."""

    def _make(
        name: str,
        service: str | None = 'run = ["bin/{name}d"]',
        definition: str | None = None,
        extra: str = "",
    ) -> Path:
        prefix = config.packages_path / name
        (prefix / "bin").mkdir(parents=True, exist_ok=True)
        manifest = f'name = "{name}"\nversion = "1.0.0"\n{extra}\n'
        if service is not None:
            manifest += "\n[service]\n" + service.replace("{name}", name) + "\n"
        (prefix / "package.toml").write_text(manifest)
        if definition is not None:
            (prefix / f"{LABEL_PREFIX}.{name}.plist").write_text(definition)
        return prefix

    return _make


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
