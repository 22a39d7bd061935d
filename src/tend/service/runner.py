"""Subprocess invocation for native service-manager commands."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one native command; never raised, always returned."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout.strip()

    @property
    def message(self) -> str:
        """Best text to show when the command failed."""
        return self.stderr.strip() or self.stdout.strip()


CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str]) -> CommandResult:
    """Run a command to completion and capture its output.

    A missing executable is reported as exit status 127, like a shell would.
    """
    args = tuple(str(arg) for arg in argv)
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        return CommandResult(argv=args, returncode=127, stderr=str(e))

    stdout, stderr = await proc.communicate()
    result = CommandResult(
        argv=args,
        returncode=proc.returncode or 0,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    logger.debug(
        "%s -> %d\n%s%s", " ".join(args), result.returncode, result.stdout, result.stderr
    )
    return result
