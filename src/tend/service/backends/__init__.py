"""Service backend detection and factory."""

import importlib

from tend.config.models import TendConfig
from tend.service.base import ServiceBackend
from tend.service.context import RuntimeContext
from tend.service.errors import UnsupportedPlatformError
from tend.service.runner import CommandRunner

_BACKENDS = {
    "launchd": "tend.service.backends.launchd.LaunchdBackend",
    "systemd": "tend.service.backends.systemd.SystemdBackend",
}


def _load_backend_class(name: str) -> type[ServiceBackend]:
    # Import dynamically to avoid loading unnecessary backends
    module_path, class_name = _BACKENDS[name].rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


def detect_backend(
    config: TendConfig,
    context: RuntimeContext,
    runner: CommandRunner | None = None,
) -> ServiceBackend:
    """Pick the backend whose control binary is on PATH.

    launchctl is probed before systemctl. The answer is fixed for the
    lifetime of the process.

    Raises:
        UnsupportedPlatformError: If neither binary is present.
    """
    for name in ("launchd", "systemd"):
        backend_class = _load_backend_class(name)
        executable = backend_class.probe()
        if executable:
            return backend_class(config, context, executable=executable, runner=runner)

    raise UnsupportedPlatformError(
        "tend is supported only on macOS or Linux (with systemd)!"
    )


def get_backend(
    name: str | None,
    config: TendConfig,
    context: RuntimeContext,
    runner: CommandRunner | None = None,
) -> ServiceBackend:
    """Get a specific backend by name, or auto-detect.

    Args:
        name: Backend name ('launchd', 'systemd') or None for auto.

    Raises:
        ValueError: If the named backend doesn't exist.
    """
    if name is None:
        return detect_backend(config, context, runner)

    if name not in _BACKENDS:
        raise ValueError(f"Unknown backend: {name}. Available: {list(_BACKENDS)}")

    return _load_backend_class(name)(config, context, runner=runner)


__all__ = ["detect_backend", "get_backend"]
