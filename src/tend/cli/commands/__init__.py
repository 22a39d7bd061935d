"""CLI command modules."""

from tend.cli.commands import cleanup, lifecycle, listing

__all__ = ["cleanup", "lifecycle", "listing"]
