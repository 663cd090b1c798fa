"""systemctl wrapper for stopping, starting and probing app services."""
import subprocess
from typing import Iterable, List

from lxcmaint.core.errors import CommandError
from lxcmaint.core.logger import get_logger

logger = get_logger(__name__)


class ServiceManager:
    """Manages the systemd units an application depends on."""

    def __init__(self, mock: bool = False):
        self.mock = mock

    def _systemctl(self, action: str, unit: str) -> None:
        cmd = ['systemctl', action, unit]

        if self.mock:
            logger.info(f"MOCK: Would run {' '.join(cmd)}")
            return

        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise CommandError(cmd, e.returncode, e.stderr or e.stdout or "")
        except FileNotFoundError:
            raise CommandError(cmd, 127, "systemctl not found")

    def stop(self, units: Iterable[str]) -> None:
        """Stop units in the given order."""
        for unit in units:
            logger.info(f"Stopping {unit}")
            self._systemctl('stop', unit)

    def start(self, units: Iterable[str]) -> None:
        """Start units in reverse of their stop order."""
        for unit in reversed(list(units)):
            logger.info(f"Starting {unit}")
            self._systemctl('start', unit)

    def restart(self, units: Iterable[str]) -> None:
        """Restart units in reverse of their stop order."""
        for unit in reversed(list(units)):
            logger.info(f"Restarting {unit}")
            self._systemctl('restart', unit)

    def is_active(self, unit: str) -> bool:
        """Return True if ``systemctl is-active`` reports the unit active."""
        if self.mock:
            return True

        result = subprocess.run(
            ['systemctl', 'is-active', '--quiet', unit],
            capture_output=True, text=True, check=False,
        )
        return result.returncode == 0

    def inactive(self, units: Iterable[str]) -> List[str]:
        """Units from ``units`` that are not currently active."""
        return [unit for unit in units if not self.is_active(unit)]

    def stop_quietly(self, units: Iterable[str]) -> None:
        """Best-effort stop; failures are logged, never raised."""
        for unit in units:
            try:
                self.stop([unit])
            except CommandError as e:
                logger.warning(f"Could not stop {unit}: {e}")

    def restart_quietly(self, units: Iterable[str]) -> None:
        """Best-effort restart; failures are logged, never raised."""
        for unit in reversed(list(units)):
            try:
                logger.info(f"Restarting {unit}")
                self._systemctl('restart', unit)
            except CommandError as e:
                logger.warning(f"Could not restart {unit}: {e}")
