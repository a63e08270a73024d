"""
Application service: bounded retry with exponential backoff and jitter.

Business decisions owned here:
  - only errors flagged retryable (RemoteUnavailable) are retried; every other
    IndexProvisioningError propagates on the first attempt.
  - the budget is bounded three ways: attempt count, total elapsed time and
    the invocation deadline. Running out of deadline surfaces ReconcileTimeout.
  - consistency waits (re-polling until a prior write becomes visible) have
    their own attempt budget, separate from the transport retries.
"""

import logging
import time
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    retry_if_not_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential_jitter,
)

from vectorindex.domain.entities.deadline import InvocationDeadline
from vectorindex.domain.errors import IndexProvisioningError, ReconcileTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, IndexProvisioningError) and exc.retryable


class RetryPolicy:
    DEFAULT_MAX_ATTEMPTS: int = 5

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = 1.0,
        max_delay: float = 20.0,
        max_elapsed: float = 120.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            max_attempts:  Attempts per call, including the first one.
            initial_delay: First backoff delay in seconds (doubled each retry, plus jitter).
            max_delay:     Upper bound of a single backoff delay.
            max_elapsed:   Upper bound of wall-clock time spent on one call.
            sleep:         Sleep function; tests pass a no-op.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.max_elapsed = max_elapsed
        self._sleep = sleep

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        deadline: Optional[InvocationDeadline] = None,
        **kwargs: Any,
    ) -> T:
        """Invoke *fn* until it succeeds, fails fatally or the budget runs out.

        Raises:
            The last retryable error once attempts or elapsed time are exhausted.
            ReconcileTimeout if the invocation deadline expired while retrying.
            Any non-retryable error unchanged.
        """
        deadline = deadline or InvocationDeadline.never()
        if deadline.expired():
            raise ReconcileTimeout(f"invocation deadline expired before calling {_name(fn)}")

        retrying = Retrying(
            stop=(
                stop_after_attempt(self.max_attempts)
                | stop_after_delay(self.max_elapsed)
                | _stop_at_deadline(deadline)
            ),
            wait=self._wait(deadline),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(fn, *args, **kwargs)
        except IndexProvisioningError as exc:
            if exc.retryable and deadline.expired():
                raise ReconcileTimeout(
                    f"invocation deadline expired while retrying {_name(fn)}: {exc.message}"
                ) from exc
            raise

    def wait_until(
        self,
        fn: Callable[[], T],
        predicate: Callable[[T], bool],
        attempts: int,
        deadline: Optional[InvocationDeadline] = None,
        description: str = "",
    ) -> T:
        """Re-poll *fn* until *predicate* holds on its result.

        Each poll goes through call(), so transport errors are retried with the
        regular budget. Returns the last result when the consistency budget
        runs out; the caller decides what an unsatisfied predicate means.
        """
        deadline = deadline or InvocationDeadline.never()
        label = description or _name(fn)

        def _log_wait(retry_state: RetryCallState) -> None:
            logger.info(
                f"Waiting for {label} to become consistent "
                f"(poll {retry_state.attempt_number}/{attempts}, "
                f"next in {retry_state.next_action.sleep:.1f}s)"
            )

        retrying = Retrying(
            stop=stop_after_attempt(max(1, attempts)) | _stop_at_deadline(deadline),
            wait=self._wait(deadline),
            retry=retry_if_not_result(predicate),
            before_sleep=_log_wait,
            sleep=self._sleep,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        return retrying(self.call, fn, deadline=deadline)

    def _wait(self, deadline: InvocationDeadline) -> Callable[[RetryCallState], float]:
        backoff = wait_exponential_jitter(self.initial_delay, self.max_delay)

        def _clipped(retry_state: RetryCallState) -> float:
            return max(0.0, min(backoff(retry_state), deadline.remaining()))

        return _clipped


def _stop_at_deadline(deadline: InvocationDeadline) -> Callable[[RetryCallState], bool]:
    def _stop(retry_state: RetryCallState) -> bool:
        return deadline.expired()

    return _stop


def _name(fn: Callable) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)
