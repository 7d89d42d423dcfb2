import datetime as dt

import pytest

from itinerary_jobs.config.settings import JobSettings
from itinerary_jobs.domain.enums import FailureReason, JobStatus
from itinerary_jobs.domain.models import ItineraryLeg, ItineraryRequest, ItineraryResult, ItinerarySummary
from itinerary_jobs.persistence.repository import InMemoryJobStore
from itinerary_jobs.persistence.sqlite_repository import SQLiteJobStore
from itinerary_jobs.services.lifecycle import JobLifecycleManager
from itinerary_jobs.shared.exceptions import ConcurrencyConflict


class _Clock:
    def __init__(self):
        self.now = dt.datetime(2024, 6, 5, 8, 0, tzinfo=dt.timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += dt.timedelta(**kwargs)


class _RacingStore(InMemoryJobStore):
    """Lets another writer change the record right before our first update."""

    def __init__(self, race):
        super().__init__()
        self._race = race
        self.raced = False

    def update(self, job, expected_etag):
        if not self.raced:
            self.raced = True
            current = self.get(job.job_id)
            super().update(self._race(current), current.etag)
        return super().update(job, expected_etag)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteJobStore(tmp_path / "jobs.sqlite3")
    return InMemoryJobStore()


@pytest.fixture
def clock():
    return _Clock()


def _request() -> ItineraryRequest:
    point = {"lat": 48.8566, "lon": 2.3522}
    return ItineraryRequest.model_validate({"start": point, "end": point, "max_duration_minutes": 120})


def _empty_result() -> ItineraryResult:
    return ItineraryResult(
        summary=ItinerarySummary(
            mode="walking",
            language="en",
            time_budget_minutes=120,
            total_distance_meters=0,
            total_travel_minutes=0,
            total_visit_minutes=0,
            total_duration_minutes=0,
            stops_count=0,
        ),
        legs=[
            ItineraryLeg(
                from_id="start",
                to_id="end",
                mode="walking",
                distance_meters=0,
                travel_minutes=0,
                depart_from_journey_start=0,
                arrive_from_journey_start=0,
            )
        ],
    )


def _manager(store, clock, **settings) -> JobLifecycleManager:
    return JobLifecycleManager(store, JobSettings(**settings), clock=clock)


def test_create_starts_processing(store, clock):
    lifecycle = _manager(store, clock, ttl_hours=2)
    job_id = lifecycle.create(_request())

    job = lifecycle.get(job_id)
    assert job.status is JobStatus.PROCESSING
    assert job.attempts == 0
    assert job.expires_at == clock.now + dt.timedelta(hours=2)

    view = lifecycle.view(job_id)
    assert view.retry_after_seconds == 3
    assert view.result is None


def test_expired_job_reads_as_missing(store, clock):
    lifecycle = _manager(store, clock, ttl_hours=1)
    job_id = lifecycle.create(_request())
    clock.advance(hours=1, seconds=1)
    assert lifecycle.get(job_id) is None
    assert lifecycle.view(job_id) is None
    assert store.get(job_id) is not None


def test_complete_then_fail_keeps_first_terminal_state(store, clock):
    lifecycle = _manager(store, clock)
    job = lifecycle.get(lifecycle.create(_request()))

    done = lifecycle.complete(job, _empty_result())
    assert done.status is JobStatus.COMPLETED
    assert done.completed_at == clock.now

    after = lifecycle.fail(done, FailureReason.INTERNAL_ERROR, "late failure")
    assert after.status is JobStatus.COMPLETED
    assert lifecycle.get(job.job_id).error is None


def test_finalize_with_stale_token_rereads_and_respects_terminal(store, clock):
    lifecycle = _manager(store, clock)
    stale = lifecycle.get(lifecycle.create(_request()))
    lifecycle.fail(stale, FailureReason.NO_OPEN_POIS, "closed")

    result = lifecycle.complete(stale, _empty_result())
    assert result.status is JobStatus.FAILED
    assert result.error.reason is FailureReason.NO_OPEN_POIS


def test_increment_attempt_retries_on_conflict(clock):
    store = _RacingStore(race=lambda job: job.model_copy(update={"attempts": job.attempts + 1}))
    lifecycle = _manager(store, clock)
    job = lifecycle.get(lifecycle.create(_request()))

    bumped = lifecycle.increment_attempt(job)
    assert bumped.attempts == 2
    assert store.raced


def test_increment_attempt_returns_terminal_record(clock):
    store = _RacingStore(race=lambda job: job.model_copy(update={"status": JobStatus.FAILED}))
    lifecycle = _manager(store, clock)
    job = lifecycle.get(lifecycle.create(_request()))

    current = lifecycle.increment_attempt(job)
    assert current.status is JobStatus.FAILED
    assert current.attempts == 0


def test_persistent_conflicts_raise(clock):
    class _AlwaysConflicting(InMemoryJobStore):
        def update(self, job, expected_etag):
            raise ConcurrencyConflict(job.job_id, expected_etag)

    lifecycle = _manager(_AlwaysConflicting(), clock)
    job = lifecycle.get(lifecycle.create(_request()))
    with pytest.raises(ConcurrencyConflict):
        lifecycle.complete(job, _empty_result())


def test_finalize_of_vanished_job_returns_none(store, clock):
    lifecycle = _manager(store, clock)
    job = lifecycle.get(lifecycle.create(_request()))
    lifecycle.increment_attempt(job)
    store.delete(job.job_id)
    assert lifecycle.fail(job, FailureReason.INTERNAL_ERROR, "gone") is None


def test_sweep_removes_only_expired(store, clock):
    lifecycle = _manager(store, clock, ttl_hours=1)
    old = lifecycle.create(_request())
    clock.advance(minutes=50)
    fresh = lifecycle.create(_request())
    clock.advance(minutes=20)

    assert lifecycle.sweep_expired() == 1
    assert store.get(old) is None
    assert lifecycle.get(fresh) is not None
