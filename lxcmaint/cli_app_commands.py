"""Application-specific CLI commands - admin tasks and profile listing."""
import typer
from rich.console import Console
from rich.table import Table

from lxcmaint.cli_support import find_config, get_manager, handle_cli_error, require_root
from lxcmaint.config.loader import ConfigLoader
from lxcmaint.core.errors import MaintenanceError

# Module-level console instance (will be set by register function)
console: Console = Console()


def _run_admin(ctx: typer.Context, name: str):
    state = ctx.obj
    require_root()

    try:
        output = get_manager(state).run_admin(name)
    except MaintenanceError as e:
        handle_cli_error(e, verbose=state.verbose)

    if output:
        console.print(output.rstrip(), highlight=False, markup=False)


def purge(ctx: typer.Context):
    """Remove expired content (e.g. PrivateBin pastes + empty dirs)."""
    _run_admin(ctx, "purge")


def stats(ctx: typer.Context):
    """Show application statistics."""
    _run_admin(ctx, "stats")


def profiles(ctx: typer.Context):
    """List known application profiles."""
    state = ctx.obj

    try:
        loader = ConfigLoader(find_config(state.config))
        loader.read()
        available = loader.profiles()
    except MaintenanceError as e:
        handle_cli_error(e, verbose=state.verbose)

    table = Table(title="Application Profiles")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("App", style="green")
    table.add_column("Marker", style="yellow")
    table.add_column("Services", style="magenta")
    table.add_column("Admin", style="blue")

    for name in sorted(available):
        profile = available[name]
        table.add_row(
            name,
            profile.title,
            profile.marker,
            ", ".join(profile.services) or "-",
            ", ".join(sorted(profile.admin)) or "-",
        )

    console.print(table)


def register_app_commands(
    app: typer.Typer,
    shared_console: Console,
):
    """Register application commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(purge)
    app.command()(stats)
    app.command()(profiles)
