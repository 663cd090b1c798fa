"""Timestamped tar.gz snapshots of an application directory."""
import os
import re
import tarfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional

from lxcmaint.core.errors import ArchiveMismatchError, PreconditionError, RestoreError
from lxcmaint.core.logger import get_logger
from lxcmaint.models.result import BackupArchive

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
ARCHIVE_SUFFIX = ".tgz"
PARTIAL_SUFFIX = ".partial"


class BackupStore:
    """Creates, lists, validates and prunes ``<prefix>-<YYYYMMDD-HHMMSS>.tgz`` archives.

    Archives contain the application directory under its own basename, so
    they extract back into the directory's parent. A second archive in the
    same second gets a ``-2`` (``-3``, ...) suffix instead of overwriting the
    first.
    """

    def __init__(
        self,
        backup_dir: Path,
        app_dir: Path,
        prefix: str,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backup_dir = Path(backup_dir)
        self.app_dir = Path(app_dir)
        self.prefix = prefix
        self.clock = clock
        self._name_pattern = re.compile(
            rf"^{re.escape(prefix)}-(\d{{8}}-\d{{6}})(?:-(\d+))?{re.escape(ARCHIVE_SUFFIX)}$"
        )

    def create(self) -> BackupArchive:
        """Archive the application directory now.

        The archive is written under a ``.partial`` name and renamed into
        place, so a listed archive is always complete.

        Raises:
            PreconditionError: If the application directory is missing
        """
        if not self.app_dir.is_dir():
            raise PreconditionError(f"APP_DIR not found: {self.app_dir}")

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        created = self.clock().replace(microsecond=0)
        path, sequence = self._unique_path(created)
        partial = path.with_name(path.name + PARTIAL_SUFFIX)

        logger.info(f"Creating backup: {path}")
        try:
            with tarfile.open(partial, 'w:gz') as tar:
                tar.add(self.app_dir, arcname=self.app_dir.name)
            os.replace(partial, path)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        logger.info(f"OK: {path}")
        return BackupArchive(path=path, created=created, sequence=sequence)

    def _unique_path(self, created: datetime):
        stamp = created.strftime(TIMESTAMP_FORMAT)
        sequence = 0
        while True:
            suffix = f"-{sequence}" if sequence else ""
            candidate = self.backup_dir / f"{self.prefix}-{stamp}{suffix}{ARCHIVE_SUFFIX}"
            partial = candidate.with_name(candidate.name + PARTIAL_SUFFIX)
            if not candidate.exists() and not partial.exists():
                return candidate, sequence
            sequence = 2 if sequence == 0 else sequence + 1

    def parse(self, path: Path) -> Optional[BackupArchive]:
        """Build a BackupArchive from a file name, or None if it is not one of ours."""
        match = self._name_pattern.match(path.name)
        if not match:
            return None
        try:
            created = datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return BackupArchive(path=path, created=created, sequence=int(match.group(2) or 0))

    def list(self) -> List[BackupArchive]:
        """All archives for this prefix, oldest first."""
        if not self.backup_dir.is_dir():
            return []

        archives = []
        for path in self.backup_dir.glob(f"{self.prefix}-*{ARCHIVE_SUFFIX}"):
            archive = self.parse(path)
            if archive is not None and path.is_file():
                archives.append(archive)

        return sorted(archives, key=lambda a: a.sort_key)

    def latest(self) -> Optional[BackupArchive]:
        """Newest archive by embedded timestamp (sequence, then mtime, break ties)."""
        archives = self.list()
        return archives[-1] if archives else None

    def top_level_name(self, archive: Path) -> str:
        """Return the single top-level directory name inside ``archive``.

        Raises:
            ArchiveMismatchError: If the archive is empty, unreadable or has
                more than one top-level entry
        """
        names = set()
        try:
            with tarfile.open(archive, 'r:*') as tar:
                for member in tar:
                    parts = PurePosixPath(member.name).parts
                    if not parts or parts[0] in ('/', '..'):
                        raise ArchiveMismatchError(f"Unsafe entry in backup: {member.name}")
                    names.add(parts[0])
        except tarfile.TarError as e:
            raise ArchiveMismatchError(f"Cannot read backup {archive}: {e}")

        if len(names) != 1:
            found = ', '.join(sorted(names)) or 'nothing'
            raise ArchiveMismatchError(f"Backup must contain exactly one top-level directory, found {found}: {archive}")
        return names.pop()

    def validate(self, archive: Path) -> None:
        """Fail closed unless ``archive`` holds ``<app_dir name>/`` at top level.

        Raises:
            PreconditionError: If the file does not exist
            ArchiveMismatchError: If the top-level directory does not match
        """
        if not archive.is_file():
            raise PreconditionError(f"Backup not found: {archive}")

        base = self.app_dir.name
        if self.top_level_name(archive) != base:
            raise ArchiveMismatchError(f"Backup does not contain '{base}/' at top-level: {archive}")

    def extract(self, archive: Path) -> None:
        """Extract ``archive`` into the application directory's parent.

        Uses the 'tar' filter: our own archives keep modes and ownership but
        may not escape the destination.

        Raises:
            RestoreError: If extraction fails
        """
        try:
            with tarfile.open(archive, 'r:*') as tar:
                tar.extractall(self.app_dir.parent, filter='tar')
        except (tarfile.TarError, OSError) as e:
            raise RestoreError(f"Failed to extract {archive}: {e}")

    def prune(self, keep: int) -> List[Path]:
        """Delete all but the newest ``keep`` archives.

        Returns:
            Paths that were deleted
        """
        if keep < 1:
            raise ValueError(f"keep must be >= 1, got {keep}")

        archives = self.list()
        doomed = archives[:-keep] if len(archives) > keep else []
        deleted = []
        for archive in doomed:
            try:
                archive.path.unlink()
                deleted.append(archive.path)
                logger.info(f"Deleted old backup {archive.name}")
            except OSError as e:
                logger.error(f"Failed to delete {archive.path}: {e}")
        return deleted
