"""Cleanup command."""

import asyncio

import typer

from tend.cli.console import error, info, success
from tend.cli.runtime import get_runtime
from tend.service import ServiceError


def register(app: typer.Typer) -> None:
    """Register the cleanup command and its aliases."""

    def cleanup(ctx: typer.Context) -> None:
        """Kill orphaned services and remove unused service files."""
        runtime = get_runtime(ctx)
        try:
            report = asyncio.run(runtime.sweep().cleanup())
        except ServiceError as e:
            error(e.message)
            raise typer.Exit(1) from None

        if report.cleaned:
            success(report.summary)
        else:
            info(report.summary)
        if report.failed:
            raise typer.Exit(1)

    app.command("cleanup")(cleanup)
    for alias in ("clean", "cl", "rm"):
        app.command(alias, hidden=True)(cleanup)
