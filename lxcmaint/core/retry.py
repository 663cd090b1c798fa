"""Bounded polling for health checks and retries for flaky network calls."""
import functools
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type

from lxcmaint.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How long to keep polling a condition.

    Attributes:
        attempts: Maximum number of checks (at least 1)
        interval: Seconds to sleep between checks
        timeout: Optional wall-clock ceiling in seconds; polling stops at
            whichever of attempts/timeout is hit first
    """

    attempts: int = 10
    interval: float = 3.0
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0, got {self.interval}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")


def poll_until(
    check: Callable[[], bool],
    policy: RetryPolicy,
    description: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Call ``check`` until it returns True or the policy is exhausted.

    Exceptions raised by ``check`` count as a failed attempt.

    Args:
        check: Zero-argument predicate
        policy: Attempt/interval/timeout budget
        description: Used in log messages
        sleep: Injected for tests
        clock: Injected for tests

    Returns:
        True if the check passed within the budget, False otherwise
    """
    started = clock()

    for attempt in range(1, policy.attempts + 1):
        try:
            if check():
                logger.debug(f"{description} passed (attempt {attempt}/{policy.attempts})")
                return True
        except Exception as e:
            logger.debug(f"{description} check raised: {e}")

        if attempt == policy.attempts:
            break

        if policy.timeout is not None and clock() - started + policy.interval > policy.timeout:
            logger.warning(f"{description} timed out after {policy.timeout:.1f}s")
            return False

        logger.debug(
            f"{description} not ready (attempt {attempt}/{policy.attempts}), "
            f"retrying in {policy.interval:.1f}s"
        )
        sleep(policy.interval)

    logger.warning(f"{description} did not pass after {policy.attempts} attempts")
    return False


def retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
):
    """Retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay in seconds between attempts
        backoff: Multiplier applied to the delay after each failure
        exceptions: Exception types that trigger another attempt

    Example:
        @retry(max_attempts=3, delay=2, exceptions=(requests.ConnectionError,))
        def latest_tag(repo):
            ...
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.error(f"{func.__name__} failed after {max_attempts} attempts: {e}")
                        raise

                    logger.warning(f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}")
                    logger.info(f"Retrying in {current_delay:.1f}s...")
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
