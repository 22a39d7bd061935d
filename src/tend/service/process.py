"""Process inspection helpers backed by psutil."""

import psutil


def user_of_process(pid: int) -> str | None:
    """Account name owning a process, or None when it can't be read.

    Args:
        pid: Process ID to query.
    """
    try:
        return psutil.Process(pid).username()
    except (psutil.NoSuchProcess, psutil.AccessDenied, KeyError):
        # KeyError: uid has no passwd entry
        return None
