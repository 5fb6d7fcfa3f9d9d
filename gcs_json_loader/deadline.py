"""Per-invocation time budget."""

import time

from gcs_json_loader.exceptions import InvocationTimeoutError


class Deadline:
    """
    Wall-clock budget for one invocation.

    Every network call gets remaining() as its timeout, so the whole invocation
    finishes (or fails with InvocationTimeoutError) within timeout_seconds.
    """

    def __init__(self, timeout_seconds: float, clock=time.monotonic):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._expires_at = clock() + timeout_seconds

    def remaining(self, operation: str) -> float:
        """Seconds left for `operation`; raises InvocationTimeoutError when none are."""
        left = self._expires_at - self._clock()
        if left <= 0:
            raise InvocationTimeoutError(operation, self.timeout_seconds)
        return left
