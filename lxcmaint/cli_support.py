"""Shared utilities for lxcmaint CLI modules."""
from __future__ import annotations

import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from lxcmaint.config.loader import ConfigLoader
from lxcmaint.core.maintenance import MaintenanceManager
from lxcmaint.models.config import MaintenanceConfig

# Default config search paths (ordered by proximity to current run)
CONFIG_PATHS = [
    "./lxcmaint.yml",
    str(Path.home() / ".config" / "lxcmaint" / "lxcmaint.yml"),
    "/etc/lxcmaint/lxcmaint.yml",
]

err_console = Console(stderr=True)


@dataclass
class CliState:
    """Global options collected by the top-level callback."""
    app: Optional[str] = None
    config: Optional[str] = None
    verbose: bool = False


def find_config(config_path: Optional[str] = None) -> Optional[str]:
    """Locate the active config file, or None to run on built-in defaults."""
    if config_path:
        return config_path

    if env_config := os.environ.get("LXCMAINT_CONFIG"):
        return env_config

    for path in CONFIG_PATHS:
        if Path(path).exists():
            return path

    return None


def is_mock() -> bool:
    """Return True when CLI runs in mock mode."""
    return os.environ.get("LXCMAINT_MOCK") == "1"


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands."""
    from lxcmaint.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def require_root() -> None:
    """Exit unless running as root (skipped in mock mode)."""
    if is_mock():
        return
    if os.geteuid() != 0:
        print_error(err_console, "Run as root.")
        raise typer.Exit(1)


def install_signal_handlers() -> None:
    """Turn SIGTERM into SystemExit so rollback handlers run before exit."""
    def _terminate(signum, frame):
        raise SystemExit(128 + signum)

    signal.signal(signal.SIGTERM, _terminate)


def load_config(state: CliState) -> MaintenanceConfig:
    """Resolve configuration for the selected application."""
    loader = ConfigLoader(find_config(state.config))
    return loader.load(app=state.app, mock=is_mock())


def get_manager(state: CliState) -> MaintenanceManager:
    """Build a MaintenanceManager for the selected application."""
    return MaintenanceManager(load_config(state))


def handle_cli_error(
    e: Exception,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Print an error to stderr and exit.

    Args:
        e: Exception to handle
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    err_console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
    if verbose:
        err_console.print_exception()
    raise typer.Exit(exit_code)


def format_size(size: int) -> str:
    """Human-readable byte count (1.2M style, like ls -lh)."""
    value = float(size)
    for unit in ("B", "K", "M", "G", "T"):
        if value < 1024 or unit == "T":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {escape(message)}", highlight=False)


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {escape(message)}", highlight=False)


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {escape(message)}", highlight=False)
