"""Advisory locking for mutating maintenance commands.

The update/restore procedure itself does not lock; two runs against the same
application directory would race on the live path. The CLI wraps mutating
commands in ``maintenance_lock`` so timer-driven and manual runs serialize.

The lock file records its holder as two lines: PID, then acquisition time.
"""
import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import NamedTuple, Optional

from lxcmaint.core.errors import MaintenanceError
from lxcmaint.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LOCK_DIR = Path("/run/lxcmaint")
POLL_INTERVAL = 0.5


class LockError(MaintenanceError):
    """Raised when unable to acquire lock."""


class LockHolder(NamedTuple):
    pid: str
    since: str

    @classmethod
    def read(cls, lock_file: Path) -> 'LockHolder':
        try:
            pid, since = lock_file.read_text().splitlines()[:2]
        except (OSError, ValueError):
            return cls('unknown', 'unknown')
        return cls(pid.strip(), since.strip())

    def describe(self) -> str:
        return f"Lock held by PID {self.pid} since {self.since}"


def _try_flock(fd: int) -> bool:
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


class MaintenanceLock:
    """flock on a per-application file, held for one maintenance command.

    Args:
        lock_file: Path to lock file
        timeout: Seconds to wait for the current holder (0 = fail immediately)
    """

    def __init__(self, lock_file: Path, timeout: int = 0):
        self.lock_file = Path(lock_file)
        self.timeout = timeout
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> bool:
        """Take the lock, polling until ``timeout`` runs out.

        Raises:
            LockError: If another process still holds it
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        # No O_TRUNC: the holder's record stays readable until we own the file
        fd = os.open(self.lock_file, os.O_RDWR | os.O_CREAT, 0o644)

        deadline = time.monotonic() + self.timeout
        while not _try_flock(fd):
            if time.monotonic() >= deadline:
                holder = LockHolder.read(self.lock_file)
                os.close(fd)
                raise LockError(self._busy_message(holder))
            time.sleep(POLL_INTERVAL)

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n{time.strftime('%Y-%m-%d %H:%M:%S')}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired lock: {self.lock_file}")
        return True

    def _busy_message(self, holder: LockHolder) -> str:
        if self.timeout:
            return f"Timeout waiting for lock after {self.timeout}s.\n{holder.describe()}"
        return (
            f"Another maintenance operation is in progress.\n{holder.describe()}\n"
            f"Wait for it to complete, or remove {self.lock_file} if stale."
        )

    def release(self) -> None:
        """Drop the lock and delete the file. No-op when not held."""
        if not self.held:
            return

        fd, self._fd = self._fd, None
        try:
            self.lock_file.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Error removing lock file: {e}")
        # Closing the descriptor releases the flock
        os.close(fd)
        logger.debug(f"Released lock: {self.lock_file}")

    def __enter__(self) -> 'MaintenanceLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def default_lock_path(app_name: str) -> Path:
    """Per-application lock file under /run/lxcmaint."""
    return DEFAULT_LOCK_DIR / f"{app_name}.lock"


@contextmanager
def maintenance_lock(lock_file: Optional[Path], timeout: int = 0):
    """Hold a MaintenanceLock for the enclosed block; ``None`` runs unlocked.

    Raises:
        LockError: If unable to acquire lock
    """
    if lock_file is None:
        yield None
        return

    with MaintenanceLock(lock_file=lock_file, timeout=timeout) as lock:
        yield lock
