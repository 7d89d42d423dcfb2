"""Job record persistence."""

from itinerary_jobs.persistence.repository import InMemoryJobStore, JobRecordStore, get_job_store
from itinerary_jobs.persistence.sqlite_repository import SQLiteJobStore

__all__ = ["InMemoryJobStore", "JobRecordStore", "SQLiteJobStore", "get_job_store"]
