"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import typer

from tend.cli.console import error, success
from tend.config import TendConfig
from tend.packages import PackageMetadata, PackageRegistry
from tend.service import (
    ReconciliationSweep,
    RuntimeContext,
    ServiceBackend,
    ServiceController,
    ServiceDescriptor,
    ServiceError,
    ServiceState,
    StatusResolver,
    UsageError,
    detect_backend,
)


@dataclass(slots=True)
class TendRuntime:
    """Composed dependencies for CLI command handlers."""

    config: TendConfig
    context: RuntimeContext
    backend: ServiceBackend
    registry: PackageRegistry
    resolver: StatusResolver
    controller: ServiceController

    def descriptor(self, package: PackageMetadata) -> ServiceDescriptor:
        return ServiceDescriptor.from_package(package, self.backend)

    def service_packages(self) -> list[PackageMetadata]:
        """Installed packages that declare or ship a service definition."""
        return [
            package
            for package in self.registry.installed_packages()
            if package.has_service
            or self.descriptor(package).canonical_definition_path.exists()
        ]

    def sweep(self) -> ReconciliationSweep:
        return ReconciliationSweep(
            self.backend, self.registry, self.controller, self.config, self.context
        )

    def resolve_targets(
        self,
        names: list[str] | None,
        all_services: bool,
        *,
        override_file: Path | None = None,
    ) -> list[ServiceDescriptor]:
        """Turn CLI arguments into descriptors. No native calls happen here.

        Raises:
            UsageError: On missing targets or conflicting flags.
        """
        names = names or []
        if names and all_services:
            raise UsageError("Service names and --all are mutually exclusive.")
        if override_file is not None and (all_services or len(names) != 1):
            raise UsageError("--file requires exactly one service name.")
        if not names and not all_services:
            raise UsageError("This command requires a service name or --all.")

        if all_services:
            packages = self.service_packages()
            if not packages:
                raise UsageError("No services available to control with `tend`.")
        else:
            for name in names:
                if not name or "/" in name or name.startswith("."):
                    raise UsageError(f"Invalid service name: {name!r}")
            packages = [self.registry.get(name) for name in names]

        return [self.descriptor(package) for package in packages]


def bootstrap_runtime(
    *, config: TendConfig, sudo_service_user: str | None = None
) -> TendRuntime:
    """Detect the invocation context and backend, and wire up components."""
    context = RuntimeContext.detect(sudo_service_user=sudo_service_user)
    backend = detect_backend(config, context)
    resolver = StatusResolver(backend)
    return TendRuntime(
        config=config,
        context=context,
        backend=backend,
        registry=PackageRegistry(config.packages_path),
        resolver=resolver,
        controller=ServiceController(backend, config, context, resolver=resolver),
    )


def get_runtime(ctx: typer.Context, sudo_service_user: str | None = None) -> TendRuntime:
    """Build the runtime for a command, exiting 1 on an unsupported platform."""
    config: TendConfig = ctx.obj.config
    try:
        return bootstrap_runtime(config=config, sudo_service_user=sudo_service_user)
    except ServiceError as e:
        error(e.message)
        raise typer.Exit(1) from None


def run_for_targets(
    runtime: TendRuntime,
    descriptors: list[ServiceDescriptor],
    action: Callable[[ServiceDescriptor], Awaitable[str]],
    *,
    skip: Callable[[ServiceState], bool] | None = None,
) -> None:
    """Apply a verb to each descriptor in order.

    A failure is reported and the remaining targets are still processed;
    the command exits 1 if any target failed. `skip` filters targets (used
    with --all) on a fresh observation before the verb runs.
    """

    async def _apply() -> int:
        failures = 0
        for descriptor in descriptors:
            if skip is not None:
                state = await runtime.resolver.observe(descriptor)
                if skip(state):
                    continue
            try:
                message = await action(descriptor)
            except ServiceError as e:
                error(e.message)
                failures += 1
                continue
            success(message)
        return failures

    if asyncio.run(_apply()):
        raise typer.Exit(1)
