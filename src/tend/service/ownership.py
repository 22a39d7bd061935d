"""Root ownership hardening for privileged starts."""

import logging
import os
import shutil
import stat
from pathlib import Path

from tend.service.definition import read_definition
from tend.service.descriptor import ServiceDescriptor
from tend.service.errors import NativeCommandError

logger = logging.getLogger(__name__)


def root_owned_paths(descriptor: ServiceDescriptor) -> list[Path]:
    """Paths a root-started service must not let other users modify.

    The installed definition itself, the program it launches (and that
    program's directory) and the package's bin/sbin directories.
    """
    dest = descriptor.installed_definition_path
    paths = [dest]

    try:
        text = read_definition(dest) if dest.exists() else ""
    except (OSError, ValueError) as e:
        raise NativeCommandError(f"Cannot read {dest}: {e}") from e
    location, key = descriptor.definition_format.program_location(text)
    if location:
        program = Path("/") / location
        if program.exists():
            resolved = program.resolve()
            paths += [resolved, resolved.parent]
        else:
            logger.warning("%s does not exist:\n  %s", key, location)

    package = descriptor.package
    paths += [package.bin, package.sbin]

    unique: list[Path] = []
    for path in paths:
        if path.exists() and path not in unique:
            unique.append(path)
    return unique


def take_root_ownership(descriptor: ServiceDescriptor, group: str) -> list[Path]:
    """chown every root-owned path to root:<group> and set the sticky bit on
    directories so only root may delete their entries.

    Raises:
        NativeCommandError: If a path can't be re-owned.
    """
    paths = root_owned_paths(descriptor)
    for path in paths:
        try:
            shutil.chown(path, user="root", group=group)
            if path.is_dir():
                os.chmod(path, path.stat().st_mode | stat.S_ISVTX)
        except (OSError, LookupError) as e:
            raise NativeCommandError(
                f"Failed to take root:{group} ownership of {path}: {e}"
            ) from e

    listing = "\n  ".join(str(p) for p in paths)
    logger.warning(
        "Taking root:%s ownership of some %s paths:\n  %s\n"
        "This will require manual removal of these paths using `sudo rm` "
        "on upgrade or uninstall.",
        group,
        descriptor.name,
        listing,
    )
    return paths
