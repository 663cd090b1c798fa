"""Facade tying backup, update, restore and admin commands to one config."""
from pathlib import Path
from typing import List, Optional

from lxcmaint.core.backup_store import BackupStore
from lxcmaint.core.errors import PreconditionError
from lxcmaint.core.logger import get_logger
from lxcmaint.core.restorer import Restorer
from lxcmaint.core.updater import Updater
from lxcmaint.models.config import MaintenanceConfig
from lxcmaint.models.result import BackupArchive, RestoreResult, UpdateResult
from lxcmaint.services.commands import CommandRunner
from lxcmaint.services.health import HealthChecker
from lxcmaint.services.release_fetcher import ReleaseFetcher
from lxcmaint.services.systemd import ServiceManager

logger = get_logger(__name__)


class MaintenanceManager:
    """Entry point for every maintenance operation on one application."""

    def __init__(
        self,
        config: MaintenanceConfig,
        services: Optional[ServiceManager] = None,
        fetcher: Optional[ReleaseFetcher] = None,
        runner: Optional[CommandRunner] = None,
        health: Optional[HealthChecker] = None,
    ):
        self.config = config
        self.services = services or ServiceManager(mock=config.mock)
        self.runner = runner or CommandRunner(mock=config.mock)
        self.backups = BackupStore(config.backup_dir, config.app_dir, config.profile.name)
        self.updater = Updater(
            config,
            services=self.services,
            fetcher=fetcher,
            runner=self.runner,
            health=health,
            backups=self.backups,
        )
        self.restorer = Restorer(config, services=self.services, backups=self.backups)

    def update(self) -> UpdateResult:
        return self.updater.update()

    def backup(self) -> BackupArchive:
        return self.backups.create()

    def list_backups(self) -> List[BackupArchive]:
        return self.backups.list()

    def restore(self, archive: Path) -> RestoreResult:
        return self.restorer.restore(archive)

    def restore_latest(self) -> RestoreResult:
        return self.restorer.restore_latest()

    def prune_backups(self, keep: Optional[int] = None) -> List[Path]:
        """Delete old archives, keeping ``keep`` (default: config keep_backups)."""
        keep = keep or self.config.keep_backups
        if keep is None:
            raise PreconditionError("Specify how many backups to keep (--keep or keep_backups)")
        return self.backups.prune(keep)

    def run_admin(self, name: str) -> str:
        """Run an application admin command such as ``purge`` or ``stats``.

        Raises:
            PreconditionError: If the profile has no such command or its
                required file is missing
            CommandError: If the command fails
        """
        profile = self.config.profile
        command = profile.admin.get(name)
        if command is None:
            raise PreconditionError(f"{profile.title} has no '{name}' command")

        if command.requires and not (self.config.app_dir / command.requires).exists():
            raise PreconditionError(
                f"Administration script not found: {self.config.app_dir / command.requires}"
            )

        logger.debug(f"Running {name}: {' '.join(command.run)}")
        return self.runner.run(command.run, cwd=self.config.app_dir)
