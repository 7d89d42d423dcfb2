"""Domain semantic exceptions."""

from __future__ import annotations

from itinerary_jobs.domain.enums import FailureReason


class DomainError(Exception):
    """Base domain exception."""


class PlanningInfeasible(DomainError):
    """Planning finished with an expected, non-retryable outcome."""

    def __init__(self, reason: FailureReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(f"{reason.value}: {message}")
