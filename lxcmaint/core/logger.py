"""Console and file logging for lxcmaint."""
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

LOG_DIR = Path("/var/log/lxcmaint")
LOG_FILE = LOG_DIR / "lxcmaint.log"

_file_logging_configured = False


def setup_file_logging(log_file: str = None, verbose: bool = False):
    """Set up file logging for maintenance runs.

    Args:
        log_file: Path to log file (defaults to /var/log/lxcmaint/lxcmaint.log)
        verbose: Enable debug-level logging

    Note:
        Falls back to /tmp if /var/log/lxcmaint is not writable. Timer-driven
        updates have no terminal, so this file is the only record of them.
    """
    global _file_logging_configured

    if _file_logging_configured:
        return

    target_log_file = Path(log_file) if log_file else LOG_FILE

    try:
        target_log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target_log_file)
    except PermissionError:
        target_log_file = Path("/tmp/lxcmaint.log")
        file_handler = logging.FileHandler(target_log_file)

    root_logger = logging.getLogger("lxcmaint")
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    _file_logging_configured = True
    root_logger.info(f"lxcmaint logging initialized: {target_log_file}")


def set_verbose(verbose: bool = True):
    """Switch every lxcmaint console logger to DEBUG (or back to INFO)."""
    level = logging.DEBUG if verbose else logging.INFO
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith("lxcmaint") and isinstance(logger, logging.Logger):
            logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a Rich console handler.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger writing to stderr
    """
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger
