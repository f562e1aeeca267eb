"""Tests for the retry policy and wrapper."""
import pytest

from regioncompare.errors import PermanentFetchError, TransientFetchError
from regioncompare.http.retry import RetryPolicy, call_with_retry


class Flaky:
    """Fails with the queued errors, then returns the result."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestRetryPolicy:
    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=5.0)
        assert [policy.delay(i) for i in range(4)] == [2.0, 4.0, 5.0, 5.0]

    def test_jitter_bounded(self):
        policy = RetryPolicy(base_delay=1.0, jitter=0.5)
        for _ in range(20):
            assert 1.0 <= policy.delay(0) <= 1.5

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)


class TestCallWithRetry:
    def test_transient_errors_retried_with_backoff(self):
        sleeps = []
        fn = Flaky([TransientFetchError("429"), TransientFetchError("503")])
        result = call_with_retry(RetryPolicy(max_attempts=3), fn, sleep=sleeps.append)
        assert result == "ok"
        assert fn.calls == 3
        assert sleeps == [2.0, 4.0]

    def test_ceiling_reraises_last_transient(self):
        sleeps = []
        last = TransientFetchError("still throttled", status_code=429)
        fn = Flaky([TransientFetchError("throttled"), last])
        with pytest.raises(TransientFetchError) as exc_info:
            call_with_retry(RetryPolicy(max_attempts=2), fn, sleep=sleeps.append)
        assert exc_info.value is last
        assert fn.calls == 2
        assert sleeps == [2.0]

    def test_permanent_error_not_retried(self):
        sleeps = []
        fn = Flaky([PermanentFetchError("403", status_code=403)])
        with pytest.raises(PermanentFetchError):
            call_with_retry(RetryPolicy(max_attempts=3), fn, sleep=sleeps.append)
        assert fn.calls == 1
        assert sleeps == []

    def test_retry_after_honoured_within_max_delay(self):
        sleeps = []
        fn = Flaky([TransientFetchError("429", retry_after=10.0),
                    TransientFetchError("429", retry_after=120.0)])
        call_with_retry(RetryPolicy(max_attempts=3, max_delay=30.0), fn, sleep=sleeps.append)
        assert sleeps == [10.0, 30.0]

    def test_arguments_passed_through(self):
        seen = []

        def fn(a, b=None):
            seen.append((a, b))
            return a

        assert call_with_retry(RetryPolicy(), fn, 1, b=2, sleep=lambda s: None) == 1
        assert seen == [(1, 2)]
