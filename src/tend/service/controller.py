"""Lifecycle verbs over service descriptors."""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager
from pathlib import Path

from tend.config.models import TendConfig
from tend.config.paths import get_staging_path
from tend.service.base import ServiceBackend
from tend.service.context import RuntimeContext
from tend.service.definition import (
    read_definition,
    render_definition,
    write_definition,
)
from tend.service.descriptor import ServiceDescriptor
from tend.service.errors import (
    AlreadyInStateError,
    DefinitionNotFoundError,
    NativeCommandError,
    NotStartedError,
    PackageNotInstalledError,
    PreconditionError,
    PrivilegeError,
    ServiceError,
    UsageError,
)
from tend.service.lock import label_lock
from tend.service.ownership import take_root_ownership
from tend.service.runner import CommandResult
from tend.service.status import ServiceState, StatusResolver

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ServiceController:
    """Implements run/start/stop/restart/kill as transitions per descriptor.

    Status is re-observed before every transition and never cached across
    one. Each public verb holds the descriptor's label lock for its whole
    duration; failures raise ServiceError subclasses.

    Example:
        controller = ServiceController(backend, config, context)
        message = await controller.start(descriptor)
    """

    def __init__(
        self,
        backend: ServiceBackend,
        config: TendConfig,
        context: RuntimeContext,
        *,
        resolver: StatusResolver | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.backend = backend
        self.config = config
        self.context = context
        self.resolver = resolver or StatusResolver(backend)
        self._sleep = sleep

    def _lock(self, descriptor: ServiceDescriptor) -> AbstractContextManager[None]:
        return label_lock(descriptor.label, enabled=self.config.lock_operations)

    async def _observe(self, descriptor: ServiceDescriptor) -> ServiceState:
        return await self.resolver.observe(descriptor)

    # -- run ---------------------------------------------------------------

    async def run(self, descriptor: ServiceDescriptor) -> str:
        """Load the service for this session only; nothing is persisted."""
        with self._lock(descriptor):
            return await self._run(descriptor)

    async def _run(self, descriptor: ServiceDescriptor) -> str:
        state = await self._observe(descriptor)
        if state.running:
            raise AlreadyInStateError(
                f"Service `{descriptor.name}` already running, "
                f"use `tend restart {descriptor.name}` to restart."
            )
        if self.context.is_root and not descriptor.allow_privileged_run:
            raise PrivilegeError(
                f"Service `{descriptor.name}` cannot be run (but can be started) as root."
            )
        self._require_installed(descriptor)

        definition_path = self._adhoc_definition(descriptor)
        await self._release_idle(descriptor, state)
        result = await self.backend.install(
            descriptor.label, definition_path, enable_at_boot=False
        )
        await self._confirm_started(descriptor, result, "run")
        return f"Successfully ran `{descriptor.name}` (label: {descriptor.label})"

    def _adhoc_definition(self, descriptor: ServiceDescriptor) -> Path:
        """The canonical definition, staged only when it needs rewriting."""
        canonical = descriptor.canonical_definition_path
        source = self._canonical_content(descriptor)
        rendered = self._render(descriptor, source)
        if canonical.exists() and rendered == source:
            return canonical

        staged = get_staging_path() / canonical.name
        self._write(staged, rendered)
        return staged

    # -- start -------------------------------------------------------------

    async def start(
        self, descriptor: ServiceDescriptor, override_file: Path | None = None
    ) -> str:
        """Install the definition into the managed directory and register it
        for autostart."""
        with self._lock(descriptor):
            return await self._start(descriptor, override_file)

    async def _start(
        self, descriptor: ServiceDescriptor, override_file: Path | None = None
    ) -> str:
        if override_file is not None and not override_file.exists():
            raise UsageError(f"Provided service file does not exist: {override_file}")

        state = await self._observe(descriptor)
        if state.running:
            raise AlreadyInStateError(
                f"Service `{descriptor.name}` already started, "
                f"use `tend restart {descriptor.name}` to restart."
            )
        self._require_installed(descriptor)

        source = self._start_content(descriptor, override_file)
        dest = descriptor.installed_definition_path
        previous = self._read_previous(dest)
        await self._release_idle(descriptor, state)

        self._write(dest, self._render(descriptor, source))
        try:
            await self.backend.reload()
            if self.context.is_root and not self.context.sudo_service_user:
                take_root_ownership(descriptor, self.backend.privileged_group)
            self._warn_privilege_mismatch(descriptor)

            result = await self.backend.install(
                descriptor.label, dest, enable_at_boot=True
            )
            await self._confirm_started(descriptor, result, "start")
        except ServiceError:
            await self._restore_definition(dest, previous)
            raise
        return f"Successfully started `{descriptor.name}` (label: {descriptor.label})"

    def _start_content(
        self, descriptor: ServiceDescriptor, override_file: Path | None
    ) -> str:
        if override_file is not None:
            return self._read_source(override_file, UsageError)
        installed = descriptor.installed_definition_path
        if installed.exists():
            return self._read_source(installed, DefinitionNotFoundError)
        return self._canonical_content(descriptor)

    def _canonical_content(self, descriptor: ServiceDescriptor) -> str:
        """Shipped file, then legacy template, then generated from the manifest."""
        canonical = descriptor.canonical_definition_path
        if canonical.exists():
            return self._read_source(canonical, DefinitionNotFoundError)

        package = descriptor.package
        if package.definition_template:
            return package.definition_template

        if package.service is not None:
            try:
                return descriptor.definition_format.generate(
                    descriptor.label, package, self.context.is_root
                )
            except ValueError as e:
                raise DefinitionNotFoundError(
                    f"Cannot generate a service definition for `{descriptor.name}`: {e}"
                ) from e

        raise DefinitionNotFoundError(
            f"Package `{descriptor.name}` has no service definition "
            f"({canonical} does not exist)."
        )

    @staticmethod
    def _read_source(path: Path, error: type[ServiceError]) -> str:
        try:
            return read_definition(path)
        except (OSError, ValueError) as e:
            raise error(f"Cannot read service file {path}: {e}") from e

    @staticmethod
    def _read_previous(dest: Path) -> bytes | None:
        try:
            return dest.read_bytes() if dest.exists() else None
        except OSError as e:
            raise NativeCommandError(f"Cannot read {dest}: {e}") from e

    @staticmethod
    def _write(path: Path, content: str) -> None:
        try:
            write_definition(path, content)
        except OSError as e:
            raise NativeCommandError(f"Failed to write {path}: {e}") from e

    async def _restore_definition(self, dest: Path, previous: bytes | None) -> None:
        """Put back whatever a failed start replaced."""
        try:
            if previous is None:
                dest.unlink(missing_ok=True)
            else:
                write_definition(dest, previous)
        except OSError as e:
            logger.error("Failed to restore %s: %s", dest, e)
        await self.backend.reload()

    def _render(self, descriptor: ServiceDescriptor, source: str) -> str:
        service_user = self.context.sudo_service_user if self.context.is_root else None
        return render_definition(
            source,
            label=descriptor.label,
            package=descriptor.package,
            fmt=descriptor.definition_format,
            service_user=service_user,
        )

    def _warn_privilege_mismatch(self, descriptor: ServiceDescriptor) -> None:
        if self.context.is_root and not descriptor.requires_privileged_start:
            logger.warning(
                "%s must be run as non-root to start at user login!", descriptor.name
            )
        elif not self.context.is_root and descriptor.requires_privileged_start:
            logger.warning(
                "%s must be run as root to start at system startup!", descriptor.name
            )

    # -- stop --------------------------------------------------------------

    async def stop(self, descriptor: ServiceDescriptor, *, no_wait: bool = False) -> str:
        """Unregister the service and remove its installed definition."""
        with self._lock(descriptor):
            return await self._stop(descriptor, no_wait=no_wait)

    async def _stop(self, descriptor: ServiceDescriptor, *, no_wait: bool = False) -> str:
        dest = descriptor.installed_definition_path
        state = await self._observe(descriptor)

        if not state.loaded:
            other = descriptor.other_scope_definition_path(self.context)
            if not dest.exists() and other.exists():
                owner = descriptor.definition_owner(other, self.context)
                retry = "tend" if self.context.is_root else "sudo tend"
                raise PrivilegeError(
                    f"Service `{descriptor.name}` is started as `{owner}`. Try:\n"
                    f"  {retry} stop {descriptor.name}"
                )
            if dest.exists():
                logger.warning(
                    "Service `%s` is not loaded but its definition file exists",
                    descriptor.name,
                )
                await self._remove_definition(descriptor)
                return f"Removed unused service file {dest}"
            raise NotStartedError(f"Service `{descriptor.name}` is not started.")

        logger.info("Stopping `%s`... (might take a while)", descriptor.name)
        if no_wait:
            await self._unregister_once(descriptor)
        elif not await self._unregister(descriptor):
            await self._escalate(descriptor)

        await self._remove_definition(descriptor)
        return f"Successfully stopped `{descriptor.name}` (label: {descriptor.label})"

    async def _unregister_once(self, descriptor: ServiceDescriptor) -> None:
        result = await self._native_stop(descriptor)
        if result.success or self.backend.is_busy(result):
            return
        state = await self._observe(descriptor)
        if state.active:
            raise NativeCommandError(
                f"Unable to stop `{descriptor.name}` (label: {descriptor.label}): "
                f"{result.message or 'unknown error'}"
            )

    async def _unregister(self, descriptor: ServiceDescriptor) -> bool:
        """Re-issue the native stop until the manager no longer holds the label live.

        Returns False when the attempt limit ran out first.
        """
        max_attempts = self.config.stop_max_attempts
        attempts = 0
        while True:
            result = await self._native_stop(descriptor)
            attempts += 1
            state = await self._observe(descriptor)
            if not state.active and not self.backend.is_busy(result):
                return True
            if max_attempts and attempts >= max_attempts:
                return not state.active
            await self._sleep(self.config.stop_poll_interval)

    async def _native_stop(self, descriptor: ServiceDescriptor) -> CommandResult:
        dest = descriptor.installed_definition_path
        return await self.backend.stop(descriptor.label, dest if dest.exists() else None)

    async def _escalate(self, descriptor: ServiceDescriptor) -> None:
        """Kill a service that outlived the stop wait loop."""
        state = await self._observe(descriptor)
        if state.pid:
            logger.warning(
                "`%s` is still loaded after stopping, killing it", descriptor.name
            )
            await self._terminate(descriptor)
            state = await self._observe(descriptor)
        if state.active:
            raise NativeCommandError(
                f"Unable to stop `{descriptor.name}` (label: {descriptor.label})"
            )

    async def _remove_definition(self, descriptor: ServiceDescriptor) -> None:
        dest = descriptor.installed_definition_path
        if dest.exists():
            try:
                dest.unlink()
            except OSError as e:
                raise NativeCommandError(f"Failed to remove {dest}: {e}") from e
            await self.backend.reload()

    # -- restart -----------------------------------------------------------

    async def restart(
        self, descriptor: ServiceDescriptor, override_file: Path | None = None
    ) -> str:
        """Stop (if registered), then run or start depending on how the
        service was brought up."""
        with self._lock(descriptor):
            state = await self._observe(descriptor)
            was_run = state.loaded and not descriptor.is_persisted
            if was_run and override_file is not None:
                raise UsageError(
                    f"Service `{descriptor.name}` was run, not started; "
                    "a service file only applies to started services."
                )
            if state.loaded:
                await self._stop(descriptor)
            if was_run:
                return await self._run(descriptor)
            return await self._start(descriptor, override_file)

    # -- kill --------------------------------------------------------------

    async def kill(self, descriptor: ServiceDescriptor) -> str:
        """Signal the running process without unregistering it."""
        with self._lock(descriptor):
            state = await self._observe(descriptor)
            if not state.pid:
                raise NotStartedError(f"Service `{descriptor.name}` is not started.")
            if descriptor.keep_alive:
                raise PreconditionError(
                    f"Service `{descriptor.name}` is set to automatically restart "
                    "and can't be killed."
                )
            await self._terminate(descriptor)
            return f"Successfully killed `{descriptor.name}` (label: {descriptor.label})"

    async def _terminate(self, descriptor: ServiceDescriptor) -> None:
        """SIGTERM, then SIGKILL after the first poll that still sees a PID."""
        sig = signal.SIGTERM
        for _ in range(self.config.kill_max_attempts):
            await self.backend.send_signal(descriptor.label, sig)
            await self._sleep(self.config.kill_poll_interval)
            state = await self._observe(descriptor)
            if not state.pid:
                return
            sig = signal.SIGKILL
        raise NativeCommandError(
            f"Unable to kill `{descriptor.name}` (label: {descriptor.label})"
        )

    # -- cleanup support ---------------------------------------------------

    async def reap(self, descriptor: ServiceDescriptor) -> None:
        """Unregister and kill a service that has no installed definition."""
        with self._lock(descriptor):
            await self._native_stop(descriptor)
            state = await self._observe(descriptor)
            if state.pid:
                await self._terminate(descriptor)

    # -- helpers -----------------------------------------------------------

    def _require_installed(self, descriptor: ServiceDescriptor) -> None:
        if not descriptor.package.is_installed:
            raise PackageNotInstalledError(
                f"Package `{descriptor.name}` is not installed."
            )

    async def _release_idle(
        self, descriptor: ServiceDescriptor, state: ServiceState
    ) -> None:
        """Unregister a service the manager holds without a live process.

        launchd refuses to bootstrap a label it already has, so a stopped or
        failed job is booted out before it is loaded again.
        """
        if state.active and not state.running:
            logger.debug("Unregistering idle `%s` before loading it", descriptor.label)
            await self._native_stop(descriptor)

    async def _confirm_started(
        self, descriptor: ServiceDescriptor, result: CommandResult, verb: str
    ) -> None:
        """A failed install is only forgiven when the service came up anyway.

        Timed services have no process between runs; for them being held by
        the manager is enough.
        """
        if result.success:
            return
        state = await self._observe(descriptor)
        if state.running or (descriptor.timed and state.active):
            return
        raise NativeCommandError(
            f"Failed to {verb} `{descriptor.name}`: "
            f"{result.message or f'exit status {result.returncode}'}"
        )
