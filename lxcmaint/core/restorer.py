"""Restore an application directory from a backup archive."""
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from lxcmaint.core.backup_store import TIMESTAMP_FORMAT, BackupStore
from lxcmaint.core.errors import NoBackupsError, PreconditionError, RestoreError
from lxcmaint.core.logger import get_logger
from lxcmaint.core.swap import move_dir, remove_path
from lxcmaint.models.config import MaintenanceConfig
from lxcmaint.models.result import RestoreResult
from lxcmaint.services.commands import apply_mode, fix_ownership
from lxcmaint.services.systemd import ServiceManager

logger = get_logger(__name__)


class Restorer:
    """Replaces the live directory with the contents of a backup archive.

    Unlike update rollback, the directory being replaced is kept as
    ``<app_dir>.pre-restore.<timestamp>`` after a successful restore.
    """

    def __init__(
        self,
        config: MaintenanceConfig,
        services: Optional[ServiceManager] = None,
        backups: Optional[BackupStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.profile = config.profile
        self.services = services or ServiceManager(mock=config.mock)
        self.backups = backups or BackupStore(config.backup_dir, config.app_dir, self.profile.name)
        self.clock = clock

    def restore(self, archive: Path) -> RestoreResult:
        """Restore ``archive`` into the application directory.

        Raises:
            PreconditionError: Missing archive (nothing touched)
            ArchiveMismatchError: Wrong top-level directory (nothing touched)
            RestoreError: Extraction failed; the previous directory was put back
        """
        if archive is None or str(archive) == "":
            raise PreconditionError("Missing backup file. Use: restore <backup.tgz>")

        archive = Path(archive)
        self.backups.validate(archive)

        app_dir = self.config.app_dir
        units = self.profile.services
        logger.info(f"Restoring from: {archive}")

        self.services.stop_quietly(units)

        previous = None
        if app_dir.exists():
            previous = self._pre_restore_path()
            logger.info(f"Keeping current as: {previous}")
            move_dir(app_dir, previous)

        try:
            self.backups.extract(archive)
            if not app_dir.is_dir():
                raise RestoreError(f"{archive} did not produce {app_dir}")
        except BaseException:
            self._put_back(previous)
            raise

        self._fix_permissions()
        self.services.start(units)

        logger.info(f"OK: Restored to {app_dir}")
        return RestoreResult(archive=archive, app_dir=app_dir, previous=previous)

    def restore_latest(self) -> RestoreResult:
        """Restore the newest archive in the backup directory.

        Raises:
            NoBackupsError: If there are no archives (nothing touched)
        """
        latest = self.backups.latest()
        if latest is None:
            raise NoBackupsError(f"No backups found in {self.config.backup_dir}")
        return self.restore(latest.path)

    def _pre_restore_path(self) -> Path:
        app_dir = self.config.app_dir
        stamp = self.clock().strftime(TIMESTAMP_FORMAT)
        candidate = app_dir.with_name(f"{app_dir.name}.pre-restore.{stamp}")
        counter = 2
        while candidate.exists():
            candidate = app_dir.with_name(f"{app_dir.name}.pre-restore.{stamp}-{counter}")
            counter += 1
        return candidate

    def _put_back(self, previous: Optional[Path]) -> None:
        """Undo a failed extraction: previous directory back at the live path."""
        logger.warning("Restore failed, putting previous directory back")
        try:
            remove_path(self.config.app_dir)
            if previous is not None and previous.exists():
                move_dir(previous, self.config.app_dir)
        except OSError as e:
            logger.error(f"Could not put back {previous}: {e}")
        self.services.restart_quietly(self.profile.services)

    def _fix_permissions(self) -> None:
        """Best-effort ownership and data-dir mode fixes."""
        try:
            fix_ownership(self.config.app_dir, self.profile.owner, mock=self.config.mock)
        except (OSError, KeyError) as e:
            logger.warning(f"Could not fix ownership of {self.config.app_dir}: {e}")

        for item in self.profile.preserve:
            target = self.config.app_dir / item.path
            if item.kind == 'dir' and item.mode is not None and target.is_dir():
                try:
                    apply_mode(target, item.mode, mock=self.config.mock)
                except OSError as e:
                    logger.warning(f"Could not chmod {target}: {e}")
