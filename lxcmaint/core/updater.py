"""In-place application update with automatic rollback."""
import shutil
from contextlib import contextmanager
from typing import Optional

from lxcmaint.core.backup_store import BackupStore
from lxcmaint.core.errors import PreconditionError, StepError
from lxcmaint.core.logger import get_logger
from lxcmaint.core.swap import StagingWorkspace, SwapTransaction, remove_path
from lxcmaint.models.config import MaintenanceConfig
from lxcmaint.models.result import UpdateResult, UpdateStatus
from lxcmaint.services.commands import CommandRunner, apply_mode, fix_ownership
from lxcmaint.services.health import HealthChecker
from lxcmaint.services.release_fetcher import ReleaseFetcher
from lxcmaint.services.systemd import ServiceManager

logger = get_logger(__name__)

STEP_BACKUP = "backup"
STEP_STAGE = "stage"
STEP_FETCH = "fetch"
STEP_PRESERVE = "preserve"
STEP_STOP = "stop"
STEP_SWAP = "swap"
STEP_RESTORE_STATE = "restore-state"
STEP_BUILD = "build"
STEP_START = "start"


@contextmanager
def _step(name: str):
    """Wrap any failure inside the block as StepError(name)."""
    logger.debug(f"Step: {name}")
    try:
        yield
    except StepError:
        raise
    except Exception as e:
        raise StepError(name, e) from e


class Updater:
    """Runs the backup / fetch / preserve / swap / rebuild / restart sequence.

    Collaborators are injectable so the whole procedure can run against
    temporary directories with fake services and fetchers.
    """

    def __init__(
        self,
        config: MaintenanceConfig,
        services: Optional[ServiceManager] = None,
        fetcher: Optional[ReleaseFetcher] = None,
        runner: Optional[CommandRunner] = None,
        health: Optional[HealthChecker] = None,
        backups: Optional[BackupStore] = None,
    ):
        self.config = config
        self.profile = config.profile
        self.services = services or ServiceManager(mock=config.mock)
        self.fetcher = fetcher or ReleaseFetcher()
        self.runner = runner or CommandRunner(mock=config.mock)
        self.health = health or HealthChecker(self.services, config.health_policy)
        self.backups = backups or BackupStore(config.backup_dir, config.app_dir, self.profile.name)

    def check_installed(self) -> None:
        """Raise PreconditionError unless the app directory holds the marker file."""
        if not self.config.app_dir.is_dir():
            raise PreconditionError(f"APP_DIR not found: {self.config.app_dir}")
        if not self.config.marker_path.is_file():
            raise PreconditionError(
                f"Not a {self.profile.title} install: {self.config.marker_path} missing"
            )

    def update(self) -> UpdateResult:
        """Update the application to the newest upstream release.

        Returns:
            UpdateResult; step failures never raise, they roll back

        Raises:
            PreconditionError: If the app is not installed (nothing touched)
        """
        self.check_installed()

        app_dir = self.config.app_dir
        units = self.profile.services
        workspace = StagingWorkspace(self.config.work_root, self.profile.name)
        transaction = None
        backup = None
        version = None

        logger.info(f"Updating {self.profile.title} in {app_dir}")
        try:
            with _step(STEP_BACKUP):
                backup = self.backups.create().path

            with _step(STEP_STAGE):
                workspace.open()

            transaction = SwapTransaction(app_dir, workspace, self.services, units, self.profile.owner)
            with workspace, transaction:
                with _step(STEP_FETCH):
                    workspace.new_dir.mkdir()
                    version = self.fetcher.fetch(self.profile.source, workspace.new_dir, self.profile.marker)

                with _step(STEP_PRESERVE):
                    logger.info("Preserving config + data")
                    self._preserve(workspace)

                with _step(STEP_STOP):
                    transaction.stop_services()

                with _step(STEP_SWAP):
                    transaction.swap_in(workspace.new_dir)

                with _step(STEP_RESTORE_STATE):
                    logger.info("Restoring config + data")
                    self._restore_preserved(workspace)
                    fix_ownership(app_dir, self.profile.owner, mock=self.config.mock)

                with _step(STEP_BUILD):
                    self._build(workspace)

                with _step(STEP_START):
                    self.services.restart(units)
                    self.health.wait_healthy(units, self.profile.health)

        except StepError as e:
            logger.error(f"Update failed at '{e.step}': {e.cause}")
            failed_rollback = transaction is not None and transaction.rollback_error is not None
            return UpdateResult(
                status=UpdateStatus.ROLLBACK_FAILED if failed_rollback else UpdateStatus.ROLLED_BACK,
                app=self.profile.name,
                version=version,
                backup=backup,
                failed_step=e.step,
                error=e.cause,
                workspace=workspace.path if workspace.keep else None,
            )

        result = UpdateResult(
            status=UpdateStatus.UPDATED,
            app=self.profile.name,
            version=version,
            backup=backup,
        )
        logger.info(f"OK: {result.summary()}")
        return result

    def _preserve(self, workspace: StagingWorkspace) -> None:
        """Copy preserved files/dirs out of the live release."""
        for item in self.profile.preserve:
            source = self.config.app_dir / item.path
            saved = workspace.preserved_dir / item.path

            if item.kind == 'file' and source.is_file():
                saved.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, saved)
            elif item.kind == 'dir' and source.is_dir():
                saved.parent.mkdir(parents=True, exist_ok=True)
                shutil.copytree(source, saved, symlinks=True)
            else:
                logger.debug(f"Nothing to preserve at {source}")

    def _restore_preserved(self, workspace: StagingWorkspace) -> None:
        """Put preserved state into the new live release."""
        app_dir = self.config.app_dir

        for item in self.profile.preserve:
            saved = workspace.preserved_dir / item.path
            target = app_dir / item.path
            target.parent.mkdir(parents=True, exist_ok=True)

            if item.kind == 'file':
                if saved.is_file():
                    remove_path(target)
                    shutil.copy2(saved, target)
                elif item.seed_from and not target.exists() and (app_dir / item.seed_from).is_file():
                    logger.info(f"Seeding {item.path} from {item.seed_from}")
                    shutil.copy2(app_dir / item.seed_from, target)
                continue

            if saved.is_dir():
                remove_path(target)
                shutil.copytree(saved, target, symlinks=True)
            else:
                target.mkdir(parents=True, exist_ok=True)
            if item.mode is not None:
                apply_mode(target, item.mode, mock=self.config.mock)

    def _build(self, workspace: StagingWorkspace) -> None:
        """Run build steps inside the new release."""
        app_dir = self.config.app_dir

        for step in self.profile.build:
            if step.if_exists and not (app_dir / step.if_exists).exists():
                logger.debug(f"Skipping '{step.name}': {step.if_exists} not in new release")
                continue
            if step.if_previous_exists and not (workspace.old_dir / step.if_previous_exists).exists():
                logger.debug(f"Skipping '{step.name}': {step.if_previous_exists} not in previous release")
                continue

            logger.info(f"Build: {step.name}")
            output = self.runner.run(step.run, cwd=app_dir, env=step.env)
            if output:
                logger.debug(output.rstrip())
