"""Advisory per-label locks between concurrent tend invocations."""

import fcntl
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from tend.config.paths import get_lock_path
from tend.service.errors import ServiceBusyError, ServiceError


@contextmanager
def label_lock(
    label: str, *, enabled: bool = True, lock_dir: Path | None = None
) -> Iterator[None]:
    """Hold an exclusive, non-blocking flock on `<lock_dir>/<label>.lock`.

    Raises:
        ServiceBusyError: If another process holds the lock.
        ServiceError: If the lock file can't be created.
    """
    if not enabled:
        yield
        return

    lock_dir = lock_dir or get_lock_path()
    lock_path = lock_dir / f"{label}.lock"
    try:
        lock_dir.mkdir(parents=True, exist_ok=True)
        lockf = lock_path.open("a+")
    except OSError as e:
        raise ServiceError(
            f"Cannot open lock file {lock_path}: {e} "
            "(set lock_operations = false to skip locking)"
        ) from e

    with lockf:
        try:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise ServiceBusyError(
                f"Another tend process is already operating on `{label}`."
            ) from None
        try:
            yield
        finally:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)
