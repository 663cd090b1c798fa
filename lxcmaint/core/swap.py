"""Scoped directory swap with guaranteed undo.

``StagingWorkspace`` owns the temporary directory for one update attempt.
``SwapTransaction`` owns the live path: once entered, leaving the block with
an exception puts the previous release back and restarts services; leaving
it cleanly commits and deletes the previous release.

    with StagingWorkspace(work_root, "privatebin") as ws:
        with SwapTransaction(app_dir, ws, services, units) as tx:
            ...
            tx.stop_services()
            tx.swap_in(ws.path / "new")
            ...
"""
import errno
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from lxcmaint.core.logger import get_logger
from lxcmaint.services.commands import fix_ownership
from lxcmaint.services.systemd import ServiceManager

logger = get_logger(__name__)


def move_dir(src: Path, dst: Path) -> None:
    """Rename ``src`` to ``dst``; copy+delete only when crossing filesystems."""
    try:
        os.rename(src, dst)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.warning(f"{src} and {dst} are on different filesystems; swap is not atomic")
        shutil.move(str(src), str(dst))


def remove_path(path: Path) -> None:
    """Delete a file, symlink or directory tree if present."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


class StagingWorkspace:
    """Temporary directory for one update attempt.

    Removed on exit unless ``keep`` was set (rollback could not complete and
    the previous release still lives here).
    """

    def __init__(self, work_root: Path, app_name: str):
        self.work_root = Path(work_root)
        self.app_name = app_name
        self.path: Optional[Path] = None
        self.keep = False

    def open(self) -> Path:
        """Create the workspace directory (idempotent)."""
        if self.path is None:
            self.work_root.mkdir(parents=True, exist_ok=True)
            self.path = Path(tempfile.mkdtemp(prefix=f".{self.app_name}-update.", dir=self.work_root))
            logger.debug(f"Staging workspace: {self.path}")
        return self.path

    def __enter__(self) -> 'StagingWorkspace':
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.keep:
            logger.error(f"Keeping staging workspace for manual recovery: {self.path}")
        else:
            shutil.rmtree(self.path, ignore_errors=True)
        return False

    @property
    def new_dir(self) -> Path:
        return self.path / "new"

    @property
    def old_dir(self) -> Path:
        return self.path / "old"

    @property
    def preserved_dir(self) -> Path:
        return self.path / "preserved"


class SwapTransaction:
    """Swap a new release into the live path, undoing everything on failure."""

    def __init__(
        self,
        live_dir: Path,
        workspace: StagingWorkspace,
        services: ServiceManager,
        units: List[str],
        owner: Optional[str] = None,
    ):
        self.live_dir = Path(live_dir)
        self.workspace = workspace
        self.services = services
        self.units = list(units)
        self.owner = owner
        self.services_stopped = False
        self.committed = False
        self.rolled_back = False
        self.rollback_error: Optional[BaseException] = None

    @property
    def old_dir(self) -> Path:
        return self.workspace.old_dir

    def stop_services(self) -> None:
        # Flag first: a partial stop still needs a restart on rollback
        self.services_stopped = True
        self.services.stop(self.units)

    def swap_in(self, new_dir: Path) -> None:
        """Move the live release aside and the new one into place."""
        logger.info("Swapping directories")
        move_dir(self.live_dir, self.old_dir)
        move_dir(new_dir, self.live_dir)

    def rollback(self) -> None:
        """Put the previous release back and restart services.

        Raises:
            OSError: If the previous release cannot be moved back
        """
        logger.warning("Rolling back...")
        if self.old_dir.exists():
            remove_path(self.live_dir)
            move_dir(self.old_dir, self.live_dir)
            try:
                fix_ownership(self.live_dir, self.owner, mock=self.services.mock)
            except (OSError, KeyError) as e:
                logger.warning(f"Could not fix ownership during rollback: {e}")
            self.services.restart_quietly(self.units)
        elif self.services_stopped:
            self.services.restart_quietly(self.units)
        self.rolled_back = True
        logger.warning(f"Rolled back to previous release at {self.live_dir}")

    def commit(self) -> None:
        """Drop the previous release; the new one stays live."""
        self.committed = True
        try:
            remove_path(self.old_dir)
        except OSError as e:
            logger.warning(f"Could not remove previous release at {self.old_dir}: {e}")

    def __enter__(self) -> 'SwapTransaction':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
            return False

        try:
            self.rollback()
        except Exception as e:
            self.rollback_error = e
            self.workspace.keep = self.old_dir.exists()
            logger.error(f"Rollback failed: {e}")
        return False
