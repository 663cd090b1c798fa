"""Post-restart health checks: systemd state and an optional HTTP check."""
import warnings
from typing import Callable, List, Optional

import requests

from lxcmaint.core.errors import HealthCheckError
from lxcmaint.core.logger import get_logger
from lxcmaint.core.retry import RetryPolicy, poll_until
from lxcmaint.models.app import HealthCheck
from lxcmaint.services.systemd import ServiceManager

logger = get_logger(__name__)


class HealthChecker:
    """Polls an application until it reports healthy or the budget runs out."""

    def __init__(
        self,
        services: ServiceManager,
        policy: RetryPolicy,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.services = services
        self.policy = policy
        self.session = session or requests.Session()
        self.sleep = sleep
        self.last_problem: Optional[str] = None

    def check_once(self, units: List[str], check: HealthCheck) -> bool:
        """One health check pass. Records the reason for failure in last_problem."""
        if check.systemd and units:
            down = self.services.inactive(units)
            if down:
                self.last_problem = f"inactive: {', '.join(down)}"
                return False

        if check.url and not self.services.mock:
            try:
                with warnings.catch_warnings():
                    if not check.verify_tls:
                        warnings.filterwarnings("ignore", message="Unverified HTTPS request")
                    response = self.session.get(
                        check.url, timeout=check.request_timeout, verify=check.verify_tls
                    )
            except requests.RequestException as e:
                self.last_problem = f"{check.url}: {e}"
                return False
            if response.status_code != check.expect_status:
                self.last_problem = (
                    f"{check.url} returned HTTP {response.status_code}, expected {check.expect_status}"
                )
                return False

        self.last_problem = None
        return True

    def wait_healthy(self, units: List[str], check: HealthCheck) -> None:
        """Poll until healthy.

        Raises:
            HealthCheckError: If the retry budget is exhausted
        """
        kwargs = {'sleep': self.sleep} if self.sleep else {}
        if poll_until(lambda: self.check_once(units, check), self.policy, description="health check", **kwargs):
            logger.info("Health check passed")
            return

        raise HealthCheckError(
            f"Application not healthy after {self.policy.attempts} attempts"
            + (f" ({self.last_problem})" if self.last_problem else "")
        )
