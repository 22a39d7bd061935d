"""Status resolution from service-manager output.

Neither launchctl nor systemctl offers a structured status API, so the raw
text of a status query is reduced to a handful of facts with per-source
regular expressions. Everything fragile about the parsing lives here.
"""

import re
from dataclasses import dataclass

from tend.service.base import OperationalStatus, RegistrationQuery, ServiceBackend
from tend.service.descriptor import ServiceDescriptor

PID_PATTERNS: dict[str, re.Pattern[str]] = {
    "launchctl_list": re.compile(r'"PID" = ([0-9]*);'),
    "launchctl_print": re.compile(r"pid = ([0-9]+)"),
    "systemctl": re.compile(r"Main PID: ([0-9]*) \((?!code=)"),
}

EXIT_CODE_PATTERNS: dict[str, re.Pattern[str]] = {
    "launchctl_list": re.compile(r'"LastExitStatus" = ([0-9]*);'),
    "launchctl_print": re.compile(r"last exit code = ([0-9]+)"),
    # An inactive unit with no recorded exit reports "(dead)"
    "systemctl": re.compile(
        r"\(code=exited, status=([0-9]+)(?:/[A-Z]+)?\)|\(dead\)"
    ),
}


@dataclass(frozen=True)
class StatusFacts:
    """What a single status query revealed."""

    loaded: bool = False
    active: bool = False
    pid: int | None = None
    exit_code: int | None = None


def extract_facts(query: RegistrationQuery | None) -> StatusFacts:
    """Pull the PID and last exit code out of a status query.

    A PID of 0 is treated as absent.
    """
    if query is None:
        return StatusFacts()

    pid = None
    pid_re = PID_PATTERNS.get(query.source)
    if pid_re and (match := pid_re.search(query.text)) and match.group(1):
        pid = int(match.group(1)) or None

    exit_code = None
    exit_re = EXIT_CODE_PATTERNS.get(query.source)
    if exit_re and (match := exit_re.search(query.text)):
        if value := match.group(1):
            exit_code = int(value)
        elif match.group(0) == "(dead)":
            exit_code = 0

    return StatusFacts(
        loaded=True, active=query.active, pid=pid, exit_code=exit_code
    )


def derive_status(
    facts: StatusFacts, *, file_present: bool, timed: bool
) -> OperationalStatus:
    """Map observed facts to exactly one OperationalStatus.

    A live PID always wins over exit-code text left over from a previous run.
    """
    if not facts.loaded:
        return OperationalStatus.UNKNOWN if file_present else OperationalStatus.NONE
    if facts.pid:
        return OperationalStatus.STARTED
    if facts.exit_code == 0:
        return OperationalStatus.SCHEDULED if timed else OperationalStatus.STOPPED
    if facts.exit_code is not None:
        return OperationalStatus.ERROR
    return OperationalStatus.UNKNOWN


@dataclass(frozen=True)
class ServiceState:
    """One fresh observation of a service."""

    status: OperationalStatus
    facts: StatusFacts
    file_present: bool

    @property
    def loaded(self) -> bool:
        return self.facts.loaded

    @property
    def active(self) -> bool:
        """Whether the manager still holds the service live.

        A stop has taken effect once this is False, even if the manager keeps
        remembering the label (systemd does while the unit file exists).
        """
        return self.facts.active

    @property
    def pid(self) -> int | None:
        return self.facts.pid

    @property
    def exit_code(self) -> int | None:
        return self.facts.exit_code

    @property
    def running(self) -> bool:
        return self.status == OperationalStatus.STARTED


class StatusResolver:
    """Derives OperationalStatus by querying the backend on every call."""

    def __init__(self, backend: ServiceBackend):
        self._backend = backend

    async def observe(self, descriptor: ServiceDescriptor) -> ServiceState:
        query = await self._backend.query(descriptor.label)
        facts = extract_facts(query)
        file_present = descriptor.installed_definition_path.exists()
        return ServiceState(
            status=derive_status(
                facts, file_present=file_present, timed=descriptor.timed
            ),
            facts=facts,
            file_present=file_present,
        )

    async def resolve(self, descriptor: ServiceDescriptor) -> OperationalStatus:
        return (await self.observe(descriptor)).status
