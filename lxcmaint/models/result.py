"""Outcomes of maintenance operations."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class UpdateStatus(str, Enum):
    """Terminal state of one update attempt."""
    UPDATED = "updated"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


@dataclass
class UpdateResult:
    """Result of ``Updater.update()``.

    ``ROLLED_BACK`` means the previous release is live again (or was never
    replaced). ``ROLLBACK_FAILED`` means manual recovery is needed; the
    staging workspace is kept and its path reported.
    """
    status: UpdateStatus
    app: str
    version: Optional[str] = None
    backup: Optional[Path] = None
    failed_step: Optional[str] = None
    error: Optional[BaseException] = None
    workspace: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.status == UpdateStatus.UPDATED

    def summary(self) -> str:
        if self.status == UpdateStatus.UPDATED:
            version = f" to {self.version}" if self.version else ""
            return f"Updated {self.app}{version}"
        if self.status == UpdateStatus.ROLLED_BACK:
            return f"Update of {self.app} failed at '{self.failed_step}' and was rolled back: {self.error}"
        return (
            f"Update of {self.app} failed at '{self.failed_step}' and rollback did not complete: "
            f"{self.error}. Previous release kept in {self.workspace}"
        )


@dataclass(frozen=True)
class BackupArchive:
    """One ``<prefix>-<YYYYMMDD-HHMMSS>[-N].tgz`` file in the backup directory."""
    path: Path
    created: datetime
    sequence: int = 0

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    @property
    def sort_key(self):
        return (self.created, self.sequence, self.path.stat().st_mtime)


@dataclass
class RestoreResult:
    """Result of a successful restore."""
    archive: Path
    app_dir: Path
    previous: Optional[Path] = None
