"""Maintenance CLI commands - update, backup, restore."""
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from lxcmaint.cli_support import (
    err_console,
    format_size,
    get_manager,
    handle_cli_error,
    install_signal_handlers,
    print_error,
    print_success,
    print_warning,
    require_root,
)
from lxcmaint.core.errors import MaintenanceError
from lxcmaint.core.lock import maintenance_lock

# Module-level console instance (will be set by register function)
console: Console = Console()

NO_LOCK = typer.Option(False, "--no-lock", help="Do not take the maintenance lock")


def update(
    ctx: typer.Context,
    no_lock: bool = NO_LOCK,
):
    """Download latest release, preserve config/data, roll back on failure."""
    state = ctx.obj
    require_root()
    install_signal_handlers()

    try:
        manager = get_manager(state)
        with maintenance_lock(None if no_lock else manager.config.lock_file):
            result = manager.update()
    except MaintenanceError as e:
        handle_cli_error(e, verbose=state.verbose)

    if not result.ok:
        print_error(err_console, result.summary())
        raise typer.Exit(1)

    print_success(console, result.summary())
    if result.backup:
        console.print(f"  Backup: {result.backup}", highlight=False)


def backup(
    ctx: typer.Context,
    no_lock: bool = NO_LOCK,
):
    """Create timestamped backup."""
    state = ctx.obj
    require_root()

    try:
        manager = get_manager(state)
        with maintenance_lock(None if no_lock else manager.config.lock_file):
            archive = manager.backup()
    except (MaintenanceError, OSError) as e:
        handle_cli_error(e, verbose=state.verbose)

    print_success(console, f"{archive.path}")


def list_backups(ctx: typer.Context):
    """Show available backups."""
    state = ctx.obj

    try:
        manager = get_manager(state)
    except MaintenanceError as e:
        handle_cli_error(e, verbose=state.verbose)

    archives = manager.list_backups()
    if not archives:
        print_warning(console, f"No backups in {manager.config.backup_dir}")
        return

    table = Table(title=f"{manager.config.profile.title} Backups")
    table.add_column("Archive", style="cyan", no_wrap=True)
    table.add_column("Size", style="magenta", justify="right")
    table.add_column("Created", style="yellow")

    for archive in archives:
        table.add_row(
            archive.name,
            format_size(archive.size),
            archive.created.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


def restore(
    ctx: typer.Context,
    archive: Path = typer.Argument(None, help="Backup archive (.tgz) to restore"),
    no_lock: bool = NO_LOCK,
):
    """Restore from backup archive."""
    state = ctx.obj
    require_root()
    install_signal_handlers()

    try:
        manager = get_manager(state)
        with maintenance_lock(None if no_lock else manager.config.lock_file):
            result = manager.restore(archive)
    except (MaintenanceError, OSError) as e:
        handle_cli_error(e, verbose=state.verbose)

    print_success(console, f"Restored {result.archive.name} to {result.app_dir}")
    if result.previous:
        console.print(f"  Previous directory kept as: {result.previous}", highlight=False)


def restore_latest(
    ctx: typer.Context,
    no_lock: bool = NO_LOCK,
):
    """Restore most recent backup."""
    state = ctx.obj
    require_root()
    install_signal_handlers()

    try:
        manager = get_manager(state)
        with maintenance_lock(None if no_lock else manager.config.lock_file):
            result = manager.restore_latest()
    except (MaintenanceError, OSError) as e:
        handle_cli_error(e, verbose=state.verbose)

    print_success(console, f"Restored {result.archive.name} to {result.app_dir}")
    if result.previous:
        console.print(f"  Previous directory kept as: {result.previous}", highlight=False)


def prune_backups(
    ctx: typer.Context,
    keep: int = typer.Option(None, "--keep", "-k", min=1, help="Number of backups to keep"),
    no_lock: bool = NO_LOCK,
):
    """Delete the oldest backups, keeping the newest N."""
    state = ctx.obj
    require_root()

    try:
        manager = get_manager(state)
        with maintenance_lock(None if no_lock else manager.config.lock_file):
            deleted = manager.prune_backups(keep)
    except MaintenanceError as e:
        handle_cli_error(e, verbose=state.verbose)

    print_success(console, f"Deleted {len(deleted)} old backup(s)")


def register_maint_commands(
    app: typer.Typer,
    shared_console: Console,
):
    """Register maintenance commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(update)
    app.command()(backup)
    app.command("list-backups")(list_backups)
    app.command()(restore)
    app.command("restore-latest")(restore_latest)
    app.command("prune-backups")(prune_backups)
