"""List and info commands."""

import asyncio
import json
from typing import Annotated

import typer

from tend.cli.console import console, error, warning
from tend.cli.runtime import get_runtime
from tend.service import ServiceError
from tend.service.listing import collect_info, collect_rows, info_lines, render_table


def show_list(ctx: typer.Context, as_json: bool) -> None:
    """Print every installed service with its observed status."""
    runtime = get_runtime(ctx)
    packages = runtime.service_packages()
    if not packages:
        if as_json:
            typer.echo("[]")
        else:
            warning("No services available to control with `tend`")
        return

    descriptors = [runtime.descriptor(package) for package in packages]
    rows = asyncio.run(collect_rows(descriptors, runtime.resolver, runtime.context))

    if as_json:
        typer.echo(json.dumps(rows, indent=2, default=str))
        return

    for line in render_table(rows, runtime.context.home):
        console.print(line)


def register(app: typer.Typer) -> None:
    """Register list/info commands."""

    def list_services(
        ctx: typer.Context,
        as_json: Annotated[
            bool,
            typer.Option("--json", help="Output as JSON"),
        ] = False,
    ) -> None:
        """List all services managed by tend."""
        show_list(ctx, as_json)

    def info(
        ctx: typer.Context,
        names: Annotated[
            list[str] | None,
            typer.Argument(help="Service names"),
        ] = None,
        all_services: Annotated[
            bool,
            typer.Option("--all", help="Show every installed service"),
        ] = False,
        as_json: Annotated[
            bool,
            typer.Option("--json", help="Output as JSON"),
        ] = False,
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="Show paths and schedule"),
        ] = False,
    ) -> None:
        """Show detailed information about services."""
        runtime = get_runtime(ctx)
        try:
            descriptors = runtime.resolve_targets(names, all_services)
        except ServiceError as e:
            error(e.message)
            raise typer.Exit(1) from None

        async def _collect() -> list[dict]:
            return [
                await collect_info(d, runtime.resolver, runtime.context)
                for d in descriptors
            ]

        records = asyncio.run(_collect())
        if as_json:
            typer.echo(json.dumps(records, indent=2, default=str))
            return

        for index, record in enumerate(records):
            if index:
                console.print()
            for line in info_lines(record, runtime.context.home, verbose=verbose):
                console.print(line)

    app.command("list")(list_services)
    app.command("ls", hidden=True)(list_services)
    app.command("info")(info)
    app.command("i", hidden=True)(info)
