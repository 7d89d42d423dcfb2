"""Submission and polling entry points shared by the API and the CLI."""

from __future__ import annotations

import logging
from typing import Optional

from itinerary_jobs.application.context import AppContext
from itinerary_jobs.domain.enums import FailureReason
from itinerary_jobs.domain.models import ItineraryRequest, JobView
from itinerary_jobs.security.redact import redact_sensitive
from itinerary_jobs.services.lifecycle import JobLifecycleManager

_logger = logging.getLogger("itinerary-jobs.service")


class ItineraryJobService:
    def __init__(self, ctx: AppContext, lifecycle: Optional[JobLifecycleManager] = None):
        self._ctx = ctx
        self._lifecycle = lifecycle or JobLifecycleManager(ctx.store, ctx.job_settings)

    @property
    def lifecycle(self) -> JobLifecycleManager:
        return self._lifecycle

    def submit(self, request: ItineraryRequest) -> str:
        """Create the job and queue it. A job that cannot be queued is failed at once."""
        job_id = self._lifecycle.create(request)
        try:
            self._ctx.queue.enqueue(job_id)
        except Exception as exc:
            _logger.error("Enqueue failed for job %s: %s", job_id, redact_sensitive(str(exc)))
            job = self._lifecycle.get(job_id)
            if job is not None:
                self._lifecycle.fail(job, FailureReason.INTERNAL_ERROR, "Job could not be queued for processing")
            raise
        self._ctx.metrics.record_submitted()
        return job_id

    def poll(self, job_id: str) -> Optional[JobView]:
        return self._lifecycle.view(job_id)


__all__ = ["ItineraryJobService"]
