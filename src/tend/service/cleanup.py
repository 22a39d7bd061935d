"""Reconciliation of registrations and definition files."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from tend.config.models import TendConfig
from tend.packages.registry import PackageRegistry
from tend.service.base import ServiceBackend
from tend.service.context import RuntimeContext
from tend.service.controller import ServiceController
from tend.service.descriptor import ServiceDescriptor
from tend.service.errors import ServiceError
from tend.service.lock import label_lock

logger = logging.getLogger(__name__)

SWEEP_LOCK = "cleanup-sweep"


@dataclass
class CleanupReport:
    """What one sweep did."""

    scope: str
    killed: list[str] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)
    unmanaged: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def cleaned(self) -> bool:
        return bool(self.killed or self.removed)

    @property
    def summary(self) -> str:
        if not self.cleaned:
            return f"All {self.scope} services OK, nothing cleaned..."
        return (
            f"Cleaned {len(self.killed)} orphaned service(s) and "
            f"{len(self.removed)} unused service file(s)."
        )


class ReconciliationSweep:
    """Implements `cleanup`.

    Pass 1 kills services the manager reports that have no installed
    definition (orphans). Pass 2 deletes installed definitions whose label
    the manager no longer reports (stale files). Pass 2 re-reads the
    manager's state so files removed by pass 1 aren't counted twice.
    """

    def __init__(
        self,
        backend: ServiceBackend,
        registry: PackageRegistry,
        controller: ServiceController,
        config: TendConfig,
        context: RuntimeContext,
    ):
        self.backend = backend
        self.registry = registry
        self.controller = controller
        self.config = config
        self.context = context

    async def cleanup(self) -> CleanupReport:
        report = CleanupReport(scope=self.context.scope_name)
        with label_lock(SWEEP_LOCK, enabled=self.config.lock_operations):
            await self._kill_orphans(report)
            await self._remove_stale_files(report)

        return report

    async def _kill_orphans(self, report: CleanupReport) -> None:
        for label in sorted(await self.backend.list_running_labels()):
            name = self.backend.name_from_label(label)
            package = self.registry.find(name) if name else None
            if package is None:
                logger.warning("Service %s not managed by `tend` => skipping", label)
                report.unmanaged.append(label)
                continue

            descriptor = ServiceDescriptor.from_package(package, self.backend)
            if descriptor.is_persisted:
                continue

            logger.info("%-15.15s stale => killing service...", descriptor.name)
            try:
                await self.controller.reap(descriptor)
            except ServiceError as e:
                logger.error("Failed to kill %s: %s", label, e.message)
                report.failed[label] = e.message
                continue
            report.killed.append(label)

    async def _remove_stale_files(self, report: CleanupReport) -> None:
        managed = self.backend.managed_path
        if not managed.is_dir():
            return

        running = await self.backend.list_running_labels()
        suffix = self.backend.definition_suffix
        pattern = f"{self.config.label_prefix}.*{suffix}"
        for path in sorted(managed.glob(pattern)):
            label = path.name.removesuffix(suffix)
            if label in running:
                continue
            logger.info("Removing unused service file %s", path)
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove %s: %s", path, e)
                report.failed[str(path)] = str(e)
                continue
            report.removed.append(path)

        if report.removed:
            await self.backend.reload()
