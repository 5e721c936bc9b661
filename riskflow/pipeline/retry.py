"""
Bounded, retried calls to external capabilities.

Only errors flagged ``retryable`` are retried; everything else propagates on
the first attempt. Delays grow exponentially between attempts.
"""

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TypeVar

from pydantic import BaseModel, Field

from riskflow.core.errors import PipelineError
from riskflow.observability import metrics
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """
    Retry settings for external calls.

    Attributes:
        max_attempts: Total attempts including the first one
        backoff_seconds: Delay before the second attempt
        multiplier: Factor applied to the delay after each attempt
        timeout_seconds: Upper bound for a single external call
    """

    max_attempts: int = Field(3, ge=1)
    backoff_seconds: float = Field(0.5, ge=0.0)
    multiplier: float = Field(2.0, ge=1.0)
    timeout_seconds: float = Field(10.0, gt=0.0)

    def delay(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.backoff_seconds * self.multiplier ** (attempt - 1)

    class Config:
        frozen = True


def call_with_retry(
    operation: str,
    fn: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    before_attempt: Callable[[], None] | None = None,
) -> T:
    """
    Call ``fn``, retrying retryable pipeline errors with exponential backoff.

    Args:
        operation: Operation name for logs and metrics
        fn: Zero-argument callable to run
        policy: Retry policy
        sleep: Sleep function (injectable for tests)
        before_attempt: Hook run before every attempt (e.g. a cancellation check)

    Returns:
        The value returned by ``fn``

    Raises:
        PipelineError: The last error once attempts are exhausted, or the first
            non-retryable one
    """
    attempt = 1
    while True:
        if before_attempt is not None:
            before_attempt()
        try:
            result = fn()
        except PipelineError as e:
            if not e.retryable:
                raise
            if attempt >= policy.max_attempts:
                metrics.increment_counter(metrics.retries_total, 1, operation=operation, status="exhausted")
                logger.error(
                    f"{operation} failed after {attempt} attempts: {e.message}",
                    extra={"operation": operation, "attempts": attempt, "error_kind": e.kind},
                )
                raise
            delay = policy.delay(attempt)
            metrics.increment_counter(metrics.retries_total, 1, operation=operation, status="retrying")
            logger.warning(
                f"{operation} attempt {attempt} failed, retrying in {delay:.2f}s",
                extra={"operation": operation, "attempt": attempt, "error_kind": e.kind},
            )
            sleep(delay)
            attempt += 1
        else:
            if attempt > 1:
                metrics.increment_counter(metrics.retries_total, 1, operation=operation, status="success")
            return result


def call_with_timeout(
    fn: Callable[[], T],
    timeout_seconds: float,
    on_timeout: Callable[[], PipelineError],
) -> T:
    """
    Run ``fn`` on a worker thread and wait at most ``timeout_seconds``.

    Raises:
        PipelineError: ``on_timeout()`` when the call does not finish in time
    """
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(fn)
        try:
            return future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            raise on_timeout()
    finally:
        executor.shutdown(wait=False)
