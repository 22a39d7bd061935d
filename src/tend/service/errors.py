"""Error taxonomy for service lifecycle operations.

Every failure surfaced to the CLI is a ServiceError carrying a message fit
for printing as-is. The CLI reports it per target and keeps going.
"""


class ServiceError(Exception):
    """Base class for all classified service failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UsageError(ServiceError):
    """Invalid invocation: missing targets, conflicting flags, bad paths."""


class UnsupportedPlatformError(ServiceError):
    """Neither launchctl nor systemctl is available."""


class PreconditionError(ServiceError):
    """The target is not in a state where the verb makes sense."""


class PackageNotInstalledError(PreconditionError):
    """The package is not installed under the configured prefix."""


class DefinitionNotFoundError(PreconditionError):
    """No service definition could be resolved for the package."""


class AlreadyInStateError(PreconditionError):
    """The service is already in the requested state."""


class NotStartedError(PreconditionError):
    """The verb needs a registered or running service and there is none."""


class PrivilegeError(PreconditionError):
    """The verb needs a different privilege scope than the current one."""


class NativeCommandError(ServiceError):
    """A native call failed and the desired state does not hold."""


class ServiceBusyError(ServiceError):
    """Another tend invocation is operating on the same service."""
