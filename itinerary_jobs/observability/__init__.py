"""Observability helpers."""

from itinerary_jobs.observability.job_metrics import JobMetrics

__all__ = ["JobMetrics"]
