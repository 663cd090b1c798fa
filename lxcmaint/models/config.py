"""Resolved maintenance configuration."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from lxcmaint.core.errors import MaintenanceError
from lxcmaint.core.retry import RetryPolicy
from lxcmaint.models.app import AppProfile


class ConfigValidationError(MaintenanceError):
    """Raised when configuration is invalid."""
    pass


@dataclass
class MaintenanceConfig:
    """Everything one maintenance run needs, with no ambient lookups left.

    Built by ``ConfigLoader`` from the config file and environment, or
    directly in tests against temporary directories.
    """
    profile: AppProfile
    app_dir: Path
    backup_dir: Path
    work_root: Optional[Path] = None
    health_policy: RetryPolicy = field(default_factory=RetryPolicy)
    lock_file: Optional[Path] = None
    keep_backups: Optional[int] = None
    variables: Dict[str, str] = field(default_factory=dict)
    mock: bool = False

    def __post_init__(self):
        self.app_dir = Path(self.app_dir)
        self.backup_dir = Path(self.backup_dir)
        # Same filesystem as the live dir so the swap is a rename
        self.work_root = Path(self.work_root) if self.work_root else self.app_dir.parent
        if self.lock_file is not None:
            self.lock_file = Path(self.lock_file)
        if self.app_dir == Path('/') or not self.app_dir.name:
            raise ConfigValidationError(f"Refusing to manage app_dir {self.app_dir}")
        if self.keep_backups is not None and (
            not isinstance(self.keep_backups, int) or isinstance(self.keep_backups, bool) or self.keep_backups < 1
        ):
            raise ConfigValidationError(f"keep_backups must be an integer >= 1, got {self.keep_backups!r}")

    @property
    def app_name(self) -> str:
        return self.profile.name

    @property
    def marker_path(self) -> Path:
        return self.app_dir / self.profile.marker
