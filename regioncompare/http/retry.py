"""Retry policy with exponential backoff for transient upstream failures."""
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from ..errors import TransientFetchError

logger = logging.getLogger(__name__)
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a transient failure.

    The wait before retry number ``attempt`` (0-based) is
    ``min(base_delay * 2 ** attempt, max_delay)`` plus up to ``jitter``
    seconds of random noise.
    """
    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must not be negative")

    def delay(self, attempt: int) -> float:
        """Backoff before the retry following the given 0-based attempt."""
        wait = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter:
            wait += random.uniform(0, self.jitter)
        return wait

    def _wait(self, retry_state: RetryCallState) -> float:
        wait = self.delay(retry_state.attempt_number - 1)
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            # Honour the server's Retry-After, still bounded by max_delay.
            wait = min(max(wait, retry_after), self.max_delay)
        return wait


def call_with_retry(policy: RetryPolicy, fn: Callable[..., T], *args: Any,
                    sleep: Callable[[float], None] = time.sleep, **kwargs: Any) -> T:
    """Run ``fn`` and retry it on TransientFetchError according to ``policy``.

    Args:
        policy: Attempt ceiling and backoff parameters.
        fn: The operation to run.
        *args: Positional arguments for ``fn``.
        sleep: Sleep function, injectable for tests.
        **kwargs: Keyword arguments for ``fn``.

    Returns:
        The return value of ``fn``.

    Raises:
        TransientFetchError: The last transient error once the ceiling is hit.
        Exception: Any non-transient error, immediately.
    """
    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy._wait,
        retry=retry_if_exception_type(TransientFetchError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(fn, *args, **kwargs)
