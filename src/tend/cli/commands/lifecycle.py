"""Service lifecycle commands: run, start, stop, restart, kill."""

from pathlib import Path
from typing import Annotated

import typer

from tend.cli.console import error
from tend.cli.runtime import TendRuntime, get_runtime, run_for_targets
from tend.service import ServiceDescriptor, ServiceError, ServiceState

NamesArg = Annotated[
    list[str] | None,
    typer.Argument(help="Service names"),
]
AllOption = Annotated[
    bool,
    typer.Option("--all", help="Apply to every installed service"),
]
FileOption = Annotated[
    Path | None,
    typer.Option("--file", help="Use this definition file instead of the package's"),
]


def _targets(
    runtime: TendRuntime,
    names: list[str] | None,
    all_services: bool,
    override_file: Path | None = None,
) -> list[ServiceDescriptor]:
    try:
        return runtime.resolve_targets(names, all_services, override_file=override_file)
    except ServiceError as e:
        error(e.message)
        raise typer.Exit(1) from None


def _running(state: ServiceState) -> bool:
    return state.running


def _not_loaded(state: ServiceState) -> bool:
    return not state.loaded


def _no_pid(state: ServiceState) -> bool:
    return not state.pid


def register(app: typer.Typer) -> None:
    """Register lifecycle commands and their aliases."""

    def run(
        ctx: typer.Context,
        names: NamesArg = None,
        all_services: AllOption = False,
    ) -> None:
        """Run a service without registering it to launch at login or boot."""
        runtime = get_runtime(ctx)
        descriptors = _targets(runtime, names, all_services)
        run_for_targets(
            runtime,
            descriptors,
            runtime.controller.run,
            skip=_running if all_services else None,
        )

    def start(
        ctx: typer.Context,
        names: NamesArg = None,
        all_services: AllOption = False,
        override_file: FileOption = None,
        sudo_service_user: Annotated[
            str | None,
            typer.Option(
                "--sudo-service-user",
                help="When root on launchd, run the service as this user",
            ),
        ] = None,
    ) -> None:
        """Start a service now and register it to launch at login (or boot as root)."""
        runtime = get_runtime(ctx, sudo_service_user=sudo_service_user)
        if sudo_service_user:
            _check_sudo_service_user(runtime)
        descriptors = _targets(runtime, names, all_services, override_file)
        run_for_targets(
            runtime,
            descriptors,
            lambda d: runtime.controller.start(d, override_file),
            skip=_running if all_services else None,
        )

    def stop(
        ctx: typer.Context,
        names: NamesArg = None,
        all_services: AllOption = False,
        no_wait: Annotated[
            bool,
            typer.Option("--no-wait", help="Don't wait for the service to unload"),
        ] = False,
    ) -> None:
        """Stop a service immediately and unregister it from launching."""
        runtime = get_runtime(ctx)
        descriptors = _targets(runtime, names, all_services)
        run_for_targets(
            runtime,
            descriptors,
            lambda d: runtime.controller.stop(d, no_wait=no_wait),
            skip=_not_loaded if all_services else None,
        )

    def restart(
        ctx: typer.Context,
        names: NamesArg = None,
        all_services: AllOption = False,
        override_file: FileOption = None,
    ) -> None:
        """Stop (if necessary) and start a service again."""
        runtime = get_runtime(ctx)
        descriptors = _targets(runtime, names, all_services, override_file)
        run_for_targets(
            runtime,
            descriptors,
            lambda d: runtime.controller.restart(d, override_file),
        )

    def kill(
        ctx: typer.Context,
        names: NamesArg = None,
        all_services: AllOption = False,
    ) -> None:
        """Signal a running service without unregistering it."""
        runtime = get_runtime(ctx)
        descriptors = _targets(runtime, names, all_services)
        run_for_targets(
            runtime,
            descriptors,
            runtime.controller.kill,
            skip=_no_pid if all_services else None,
        )

    app.command("run")(run)
    app.command("start")(start)
    app.command("stop")(stop)
    app.command("restart")(restart)
    app.command("kill")(kill)

    for alias in ("launch", "load", "s", "l"):
        app.command(alias, hidden=True)(start)
    for alias in ("unload", "terminate", "term", "t", "u"):
        app.command(alias, hidden=True)(stop)
    for alias in ("relaunch", "reload", "r"):
        app.command(alias, hidden=True)(restart)


def _check_sudo_service_user(runtime: TendRuntime) -> None:
    """--sudo-service-user only makes sense as root on launchd."""
    problem = None
    if not runtime.context.is_root:
        problem = "--sudo-service-user requires root."
    elif runtime.backend.name != "launchd":
        problem = "--sudo-service-user is only supported with launchd."
    if problem:
        error(problem)
        raise typer.Exit(1)
