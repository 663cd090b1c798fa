#!/usr/bin/env python3
"""lxcmaint CLI - safe in-place updates for apps in Proxmox LXC containers."""

import typer
from rich.console import Console

from lxcmaint.cli_app_commands import register_app_commands
from lxcmaint.cli_maint_commands import register_maint_commands
from lxcmaint.cli_support import CliState, setup_file_logging
from lxcmaint.core.logger import set_verbose

app = typer.Typer(
    name="lxcmaint",
    help="""lxcmaint - Update, back up and restore self-hosted apps in place

Every update is backed up first and rolled back automatically on failure.

Quick start:
  lxcmaint -a privatebin backup          # Snapshot the app directory
  lxcmaint -a privatebin update          # Latest release, keep config + data
  lxcmaint -a privatebin restore-latest  # Undo with the newest backup

Env overrides: APP_DIR, BACKUP_DIR, LXCMAINT_APP, LXCMAINT_CONFIG, PHP_VERSION
""",
    add_completion=False,
)

console = Console()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    app_name: str = typer.Option(None, "--app", "-a", help="Application profile (e.g. privatebin)"),
    config: str = typer.Option(None, "--config", "-c", help="Path to lxcmaint.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output"),
    log_file: str = typer.Option(None, "--log-file", help="Also log to this file"),
):
    """Global options."""
    ctx.obj = CliState(app=app_name, config=config, verbose=verbose)

    if verbose:
        set_verbose(True)
    if log_file:
        setup_file_logging(log_file=log_file, verbose=verbose)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


register_maint_commands(app, console)
register_app_commands(app, console)

if __name__ == "__main__":
    app()
