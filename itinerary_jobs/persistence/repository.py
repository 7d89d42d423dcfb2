"""Job record store interface, in-memory backend and factory."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from pathlib import Path
from typing import Protocol

from itinerary_jobs.config.settings import JobSettings
from itinerary_jobs.domain.models import ItineraryJob
from itinerary_jobs.persistence.sqlite_repository import SQLiteJobStore, new_etag
from itinerary_jobs.shared.exceptions import ConcurrencyConflict

_logger = logging.getLogger("itinerary-jobs.persistence")


class JobRecordStore(Protocol):
    """Keyed record store with compare-and-swap updates.

    ``update`` writes only when the stored etag still equals ``expected_etag``
    and returns the record stamped with a fresh etag; otherwise it raises
    ``ConcurrencyConflict``.
    """

    backend: str

    def create(self, job: ItineraryJob) -> ItineraryJob: ...

    def get(self, job_id: str) -> ItineraryJob | None: ...

    def update(self, job: ItineraryJob, expected_etag: str) -> ItineraryJob: ...

    def query_expired(self, now: dt.datetime, limit: int = 200) -> list[str]: ...

    def delete(self, job_id: str) -> bool: ...


class InMemoryJobStore:
    """Thread-safe store for single-process deployments and tests.

    Records are kept serialized so callers never share mutable state.
    """

    backend = "memory"

    def __init__(self) -> None:
        self._rows: dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, job: ItineraryJob) -> ItineraryJob:
        stored = job.model_copy(update={"etag": new_etag()})
        with self._lock:
            if job.job_id in self._rows:
                raise ValueError(f"job {job.job_id} already exists")
            self._rows[job.job_id] = stored.model_dump_json()
        return stored

    def get(self, job_id: str) -> ItineraryJob | None:
        with self._lock:
            raw = self._rows.get(job_id)
        if raw is None:
            return None
        return ItineraryJob.model_validate_json(raw)

    def update(self, job: ItineraryJob, expected_etag: str) -> ItineraryJob:
        stored = job.model_copy(update={"etag": new_etag()})
        with self._lock:
            raw = self._rows.get(job.job_id)
            if raw is None or ItineraryJob.model_validate_json(raw).etag != expected_etag:
                raise ConcurrencyConflict(job.job_id, expected_etag)
            self._rows[job.job_id] = stored.model_dump_json()
        return stored

    def query_expired(self, now: dt.datetime, limit: int = 200) -> list[str]:
        with self._lock:
            rows = [ItineraryJob.model_validate_json(raw) for raw in self._rows.values()]
        expired = sorted((job for job in rows if job.is_expired(now)), key=lambda job: job.expires_at)
        return [job.job_id for job in expired[: max(1, int(limit))]]

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._rows.pop(job_id, None) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._rows)


def get_job_store(settings: JobSettings) -> JobRecordStore:
    if settings.store_backend == "sqlite":
        _logger.info("Job store initialized with SQLite backend at %s", settings.store_db_path)
        return SQLiteJobStore(Path(settings.store_db_path))
    return InMemoryJobStore()
