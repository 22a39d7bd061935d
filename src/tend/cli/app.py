"""Main CLI application."""

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer

from tend.cli.commands import cleanup, lifecycle, listing
from tend.cli.console import error
from tend.config import ConfigError, TendConfig, load_config
from tend.logging import configure_logging

app = typer.Typer(
    name="tend",
    help="Manage background services for installed packages via launchd or systemd.",
)


@dataclass
class CliState:
    """Per-invocation state shared with subcommands through the typer context."""

    config: TendConfig
    verbose: bool = False


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Log every native service-manager call",
        ),
    ] = False,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
        ),
    ] = None,
) -> None:
    """Manage background services for installed packages."""
    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1) from None

    configure_logging("DEBUG" if verbose else config.log_level, use_rich=True)
    ctx.obj = CliState(config=config, verbose=verbose)

    # `tend` with no verb lists services
    if ctx.invoked_subcommand is None:
        listing.show_list(ctx, as_json=False)


listing.register(app)
lifecycle.register(app)
cleanup.register(app)


if __name__ == "__main__":
    app()
