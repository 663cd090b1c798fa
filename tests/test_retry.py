"""Tests for polling and retry helpers."""
import pytest

from lxcmaint.core.retry import RetryPolicy, poll_until, retry


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRetryPolicy:
    """Policy validation."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.attempts == 10
        assert policy.interval == 3.0
        assert policy.timeout is None

    @pytest.mark.parametrize("kwargs", [
        {'attempts': 0},
        {'interval': -1},
        {'timeout': 0},
    ])
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestPollUntil:
    """poll_until behaviour."""

    def test_passes_first_time(self):
        clock = FakeClock()

        assert poll_until(lambda: True, RetryPolicy(), sleep=clock.sleep, clock=clock) is True
        assert clock.sleeps == []

    def test_passes_after_retries(self):
        """Sleeps the policy interval between failed checks."""
        clock = FakeClock()
        results = iter([False, False, True])

        ok = poll_until(lambda: next(results), RetryPolicy(attempts=5, interval=2),
                        sleep=clock.sleep, clock=clock)

        assert ok is True
        assert clock.sleeps == [2, 2]

    def test_gives_up_after_attempts(self):
        clock = FakeClock()
        calls = []

        def check():
            calls.append(1)
            return False

        ok = poll_until(check, RetryPolicy(attempts=3, interval=1), sleep=clock.sleep, clock=clock)

        assert ok is False
        assert len(calls) == 3
        assert clock.sleeps == [1, 1]

    def test_exception_counts_as_failure(self):
        clock = FakeClock()
        results = iter([ConnectionError("refused"), True])

        def check():
            result = next(results)
            if isinstance(result, Exception):
                raise result
            return result

        assert poll_until(check, RetryPolicy(attempts=2, interval=0), sleep=clock.sleep, clock=clock) is True

    def test_timeout_stops_early(self):
        """Wall-clock ceiling wins over remaining attempts."""
        clock = FakeClock()
        calls = []

        def check():
            calls.append(1)
            return False

        policy = RetryPolicy(attempts=100, interval=3, timeout=10)
        ok = poll_until(check, policy, sleep=clock.sleep, clock=clock)

        assert ok is False
        assert len(calls) == 4
        assert clock.now <= 10


class TestRetryDecorator:
    """retry() for flaky network calls."""

    @pytest.fixture(autouse=True)
    def no_sleep(self, monkeypatch):
        self.sleeps = []
        monkeypatch.setattr('lxcmaint.core.retry.time.sleep', self.sleeps.append)

    def test_returns_first_success(self):
        @retry(max_attempts=3, delay=1)
        def ok():
            return "done"

        assert ok() == "done"
        assert self.sleeps == []

    def test_retries_with_backoff(self):
        """Delay grows by the backoff factor between attempts."""
        results = iter([ConnectionError("a"), ConnectionError("b"), "done"])

        @retry(max_attempts=3, delay=2, backoff=3, exceptions=(ConnectionError,))
        def flaky():
            result = next(results)
            if isinstance(result, Exception):
                raise result
            return result

        assert flaky() == "done"
        assert self.sleeps == [2, 6]

    def test_reraises_after_last_attempt(self):
        calls = []

        @retry(max_attempts=2, delay=1, exceptions=(ConnectionError,))
        def down():
            calls.append(1)
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError):
            down()

        assert len(calls) == 2

    def test_other_exceptions_not_retried(self):
        calls = []

        @retry(max_attempts=3, delay=1, exceptions=(ConnectionError,))
        def broken():
            calls.append(1)
            raise ValueError("bad json")

        with pytest.raises(ValueError):
            broken()

        assert len(calls) == 1

    def test_preserves_name(self):
        @retry()
        def latest_tag():
            pass

        assert latest_tag.__name__ == "latest_tag"

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            retry(max_attempts=0)
