"""
Domain value object for cooperative cancellation of a single invocation.
Zero external dependencies.
"""

import math
import time
from typing import Callable


class InvocationDeadline:
    """Remaining time budget of the current invocation.

    Steps check expired() before starting; steps already in flight are never
    interrupted. The safety margin is kept back so that a result can still be
    reported after the last step.
    """

    def __init__(self, remaining_seconds: Callable[[], float], margin_seconds: float = 0.0) -> None:
        self._remaining_seconds = remaining_seconds
        self._margin = margin_seconds

    @classmethod
    def never(cls) -> "InvocationDeadline":
        return cls(lambda: math.inf)

    @classmethod
    def after(cls, seconds: float, margin_seconds: float = 0.0) -> "InvocationDeadline":
        """Deadline *seconds* from now, measured on the monotonic clock."""
        expires_at = time.monotonic() + seconds
        return cls(lambda: expires_at - time.monotonic(), margin_seconds)

    @classmethod
    def from_lambda_context(cls, context, margin_seconds: float = 0.0) -> "InvocationDeadline":
        """Wrap an AWS Lambda context object; None yields an unbounded deadline."""
        if context is None or not hasattr(context, "get_remaining_time_in_millis"):
            return cls(lambda: math.inf, margin_seconds)
        return cls(lambda: context.get_remaining_time_in_millis() / 1000.0, margin_seconds)

    def remaining(self) -> float:
        return max(0.0, self._remaining_seconds() - self._margin)

    def expired(self) -> bool:
        return self.remaining() <= 0.0
