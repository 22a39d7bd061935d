"""Service lifecycle management over launchd and systemd."""

from tend.service.backends import detect_backend, get_backend
from tend.service.base import OperationalStatus, RegistrationQuery, ServiceBackend
from tend.service.cleanup import CleanupReport, ReconciliationSweep
from tend.service.context import RuntimeContext
from tend.service.controller import ServiceController
from tend.service.descriptor import ServiceDescriptor
from tend.service.errors import (
    AlreadyInStateError,
    DefinitionNotFoundError,
    NativeCommandError,
    NotStartedError,
    PackageNotInstalledError,
    PreconditionError,
    PrivilegeError,
    ServiceBusyError,
    ServiceError,
    UnsupportedPlatformError,
    UsageError,
)
from tend.service.status import ServiceState, StatusResolver

__all__ = [
    "AlreadyInStateError",
    "CleanupReport",
    "DefinitionNotFoundError",
    "NativeCommandError",
    "NotStartedError",
    "OperationalStatus",
    "PackageNotInstalledError",
    "PreconditionError",
    "PrivilegeError",
    "ReconciliationSweep",
    "RegistrationQuery",
    "RuntimeContext",
    "ServiceBackend",
    "ServiceBusyError",
    "ServiceController",
    "ServiceDescriptor",
    "ServiceError",
    "ServiceState",
    "StatusResolver",
    "UnsupportedPlatformError",
    "UsageError",
    "detect_backend",
    "get_backend",
]
