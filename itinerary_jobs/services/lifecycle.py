"""Job state machine on top of a compare-and-swap record store."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Callable, Optional

from itinerary_jobs.config.settings import JobSettings
from itinerary_jobs.domain.enums import FailureReason, JobStatus
from itinerary_jobs.domain.models import (
    ItineraryError,
    ItineraryJob,
    ItineraryRequest,
    ItineraryResult,
    JobView,
)
from itinerary_jobs.persistence.repository import JobRecordStore
from itinerary_jobs.shared.exceptions import ConcurrencyConflict

_logger = logging.getLogger("itinerary-jobs.lifecycle")
_CAS_RETRIES = 3


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class JobLifecycleManager:
    """Processing -> Completed | Failed. Terminal states are never overwritten.

    Expired records read as missing even before the sweep removes them.
    """

    def __init__(
        self,
        store: JobRecordStore,
        settings: JobSettings,
        clock: Callable[[], dt.datetime] = _utc_now,
    ):
        self._store = store
        self._settings = settings
        self._clock = clock

    @property
    def store(self) -> JobRecordStore:
        return self._store

    def create(self, request: ItineraryRequest) -> str:
        now = self._clock()
        job = ItineraryJob(
            job_id=str(uuid.uuid4()),
            status=JobStatus.PROCESSING,
            request=request,
            created_at=now,
            attempts=0,
            expires_at=now + dt.timedelta(hours=self._settings.ttl_hours),
        )
        created = self._store.create(job)
        _logger.info("Created job %s (expires %s)", created.job_id, created.expires_at.isoformat())
        return created.job_id

    def get(self, job_id: str) -> Optional[ItineraryJob]:
        job = self._store.get(job_id)
        if job is None or job.is_expired(self._clock()):
            return None
        return job

    def view(self, job_id: str) -> Optional[JobView]:
        job = self.get(job_id)
        if job is None:
            return None
        return JobView.from_job(job, retry_after_seconds=self._settings.processing_retry_after_seconds)

    def increment_attempt(self, job: ItineraryJob) -> Optional[ItineraryJob]:
        """Bump the attempt counter. Returns the fresh record, terminal if another writer finished it."""
        current: Optional[ItineraryJob] = job
        for _ in range(_CAS_RETRIES):
            if current is None or current.status.is_terminal:
                return current
            try:
                return self._store.update(
                    current.model_copy(update={"attempts": current.attempts + 1}),
                    current.etag,
                )
            except ConcurrencyConflict:
                current = self._store.get(job.job_id)
        raise ConcurrencyConflict(job.job_id, job.etag)

    def complete(self, job: ItineraryJob, result: ItineraryResult) -> Optional[ItineraryJob]:
        return self._finalize(
            job,
            {"status": JobStatus.COMPLETED, "result": result, "error": None},
        )

    def fail(self, job: ItineraryJob, reason: FailureReason, message: str) -> Optional[ItineraryJob]:
        return self._finalize(
            job,
            {"status": JobStatus.FAILED, "result": None, "error": ItineraryError(reason=reason, message=message)},
        )

    def _finalize(self, job: ItineraryJob, fields: dict[str, Any]) -> Optional[ItineraryJob]:
        current: Optional[ItineraryJob] = job
        for _ in range(_CAS_RETRIES):
            if current is None:
                _logger.warning("Job %s vanished before it could be finalized", job.job_id)
                return None
            if current.status.is_terminal:
                _logger.info("Job %s already %s, skipping write", job.job_id, current.status.value)
                return current
            try:
                return self._store.update(
                    current.model_copy(update={**fields, "completed_at": self._clock()}),
                    current.etag,
                )
            except ConcurrencyConflict:
                _logger.info("Job %s changed concurrently, re-reading", job.job_id)
                current = self._store.get(job.job_id)
        raise ConcurrencyConflict(job.job_id, job.etag)

    def sweep_expired(self, limit: Optional[int] = None) -> int:
        ids = self._store.query_expired(self._clock(), limit or self._settings.sweep_batch_size)
        removed = sum(1 for job_id in ids if self._store.delete(job_id))
        if removed:
            _logger.info("Swept %d expired jobs", removed)
        return removed


__all__ = ["JobLifecycleManager"]
