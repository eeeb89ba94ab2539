"""
Run deadline shared by the token exchange and the Secret upsert.

The timeout flag bounds the whole run, not each call, so every network
call asks the deadline how much time is left and uses that as its own
timeout.
"""

import time
from typing import Callable

from .errors import DeadlineExceededError


class Deadline:
    """A fixed point in time after which no further work may start."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        if seconds <= 0:
            raise ValueError(f"deadline must be positive, got {seconds}")
        self.seconds = seconds
        self._clock = clock
        self._expires = clock() + seconds

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self._expires - self._clock())

    def check(self, step: str) -> float:
        """
        Raise if the deadline has passed, otherwise return the time left.

        Args:
            step: Short description of the work about to start, used in
                  the error message.

        Raises:
            DeadlineExceededError: If no time is left.
        """
        left = self.remaining()
        if left <= 0:
            raise DeadlineExceededError(
                f"timed out after {self.seconds:g}s before {step}"
            )
        return left
