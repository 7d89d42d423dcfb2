"""Cooperative deadlines passed from the dispatcher down to provider calls."""

from __future__ import annotations

import time
from typing import Callable, Optional

from itinerary_jobs.shared.exceptions import DeadlineExceeded


class Deadline:
    def __init__(self, expires_at: float, clock: Callable[[], float] = time.monotonic):
        self._expires_at = float(expires_at)
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + max(0.0, float(seconds)), clock)

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(float("inf"))

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def timeout_for(self, call_timeout: Optional[float]) -> Optional[float]:
        """Clip a per-call timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if call_timeout is None:
            return None if remaining == float("inf") else remaining
        return min(float(call_timeout), remaining)

    def check(self, operation: str) -> None:
        if self.expired:
            raise DeadlineExceeded(f"deadline exceeded before {operation}")
