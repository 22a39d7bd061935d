"""tend: drive launchd and systemd services for installed packages."""

__version__ = "0.1.0"
