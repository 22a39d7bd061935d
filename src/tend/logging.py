"""Centralized logging configuration for tend.

This module provides a single point of truth for logging setup.
The CLI entry point calls configure_logging() before dispatching a verb.

Logging Levels:
- DEBUG: Native service-manager invocations and their raw output
- INFO: Lifecycle progress and outcomes ("Successfully started ...")
- WARNING: Inconsistencies, privilege mismatches, ownership hardening
- ERROR: Failures that affect operation
"""

import logging
import os

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ComponentFormatter(logging.Formatter):
    """Formatter that extracts component name from logger path.

    Converts full module paths to short component names:
    - tend.service.backends.launchd -> service
    - tend.packages.registry -> packages
    """

    def format(self, record: logging.LogRecord) -> str:
        parts = record.name.split(".")
        if len(parts) >= 2 and parts[0] == "tend":
            record.component = parts[1]
        else:
            record.component = parts[0]
        return super().format(record)


def resolve_level(level: str | None) -> str:
    """Resolve a log level name from argument, TEND_LOG_LEVEL, or INFO."""
    if level is None:
        level = os.environ.get("TEND_LOG_LEVEL", "INFO")
    level = level.upper()
    if level not in LEVELS:
        level = "INFO"
    return level


def configure_logging(level: str | None = None, use_rich: bool = False) -> None:
    """Configure logging for tend.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
            If None, uses TEND_LOG_LEVEL env var or INFO.
        use_rich: Use Rich handler for colorful terminal output (CLI mode).
    """
    log_level = getattr(logging, resolve_level(level))

    if use_rich:
        from rich.logging import RichHandler

        handler: logging.Handler = RichHandler(
            rich_tracebacks=False,
            show_path=False,
            show_time=False,
            markup=False,
        )
        handler.setFormatter(ComponentFormatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        force=True,
    )
