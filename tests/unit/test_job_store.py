import datetime as dt

import pytest

from itinerary_jobs.domain.enums import FailureReason, JobStatus
from itinerary_jobs.domain.models import ItineraryError, ItineraryJob, ItineraryRequest
from itinerary_jobs.persistence.repository import InMemoryJobStore
from itinerary_jobs.persistence.sqlite_repository import SQLiteJobStore
from itinerary_jobs.shared.exceptions import ConcurrencyConflict

NOW = dt.datetime(2024, 6, 5, 8, 0, tzinfo=dt.timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteJobStore(tmp_path / "jobs.sqlite3")
    return InMemoryJobStore()


def _job(job_id="7b7f5f5e-3a4e-4a8c-9a51-2d1f0e9c1a11", expires_in_hours=24) -> ItineraryJob:
    request = ItineraryRequest.model_validate(
        {
            "start": {"lat": 48.8566, "lon": 2.3522},
            "end": {"lat": 48.8566, "lon": 2.3522},
            "max_duration_minutes": 240,
            "interests": "museums",
            "departure_time": "2024-06-05T10:00:00",
        }
    )
    return ItineraryJob(
        job_id=job_id,
        request=request,
        created_at=NOW,
        expires_at=NOW + dt.timedelta(hours=expires_in_hours),
    )


def test_create_and_get_round_trip(store):
    created = store.create(_job())
    assert created.etag

    loaded = store.get(created.job_id)
    assert loaded is not None
    assert loaded.status is JobStatus.PROCESSING
    assert loaded.request == created.request
    assert loaded.expires_at == created.expires_at
    assert loaded.etag == created.etag
    assert store.get("missing") is None


def test_duplicate_create_is_rejected(store):
    store.create(_job())
    with pytest.raises(ValueError):
        store.create(_job())


def test_update_requires_current_etag(store):
    created = store.create(_job())
    failed = created.model_copy(
        update={
            "status": JobStatus.FAILED,
            "error": ItineraryError(reason=FailureReason.NO_OPEN_POIS, message="closed"),
            "completed_at": NOW,
        }
    )
    updated = store.update(failed, created.etag)
    assert updated.etag != created.etag

    with pytest.raises(ConcurrencyConflict):
        store.update(failed, created.etag)

    loaded = store.get(created.job_id)
    assert loaded.status is JobStatus.FAILED
    assert loaded.error.reason is FailureReason.NO_OPEN_POIS


def test_update_of_missing_record_conflicts(store):
    with pytest.raises(ConcurrencyConflict):
        store.update(_job(), "whatever")


def test_query_expired_and_delete(store):
    store.create(_job("a0000000-0000-4000-8000-000000000001", expires_in_hours=1))
    store.create(_job("b0000000-0000-4000-8000-000000000002", expires_in_hours=48))

    expired = store.query_expired(NOW + dt.timedelta(hours=2))
    assert expired == ["a0000000-0000-4000-8000-000000000001"]
    assert store.delete(expired[0])
    assert not store.delete(expired[0])
    assert store.count() == 1
