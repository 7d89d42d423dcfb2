import uuid

from fastapi.testclient import TestClient

from itinerary_jobs.api.main import JOBS_PATH, create_app
from itinerary_jobs.application.context import make_app_context
from itinerary_jobs.config.settings import JobSettings
from itinerary_jobs.services.worker import ItineraryWorker

PARIS = {"lat": 48.8566, "lon": 2.3522}


def _body(**overrides):
    body = {
        "start": PARIS,
        "end": PARIS,
        "maxDurationMinutes": 240,
        "mode": "Walking",
        "interests": "museums, parks",
        "departureTime": "2024-06-05T10:00:00",
    }
    body.update(overrides)
    return body


def _setup():
    ctx = make_app_context(job_settings=JobSettings(receive_wait_seconds=0))
    client = TestClient(create_app(ctx, embedded_workers=0))
    return ctx, client


def test_health_and_security_headers():
    _, client = _setup()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_submit_poll_complete():
    ctx, client = _setup()
    resp = client.post(JOBS_PATH, json=_body())
    assert resp.status_code == 202
    job_id = resp.json()["jobId"]
    assert resp.headers["Location"] == f"{JOBS_PATH}/{job_id}"
    assert resp.headers["Retry-After"] == "3"

    pending = client.get(f"{JOBS_PATH}/{job_id}")
    assert pending.status_code == 202
    assert pending.json() == {"jobId": job_id, "status": "processing"}
    assert pending.headers["Retry-After"] == "3"

    assert ItineraryWorker.from_context(ctx).process_next() == "completed"

    done = client.get(f"{JOBS_PATH}/{job_id}")
    assert done.status_code == 200
    payload = done.json()
    assert payload["status"] == "completed"
    result = payload["result"]
    assert len(result["legs"]) == len(result["stops"]) + 1
    assert result["summary"]["total_duration_minutes"] <= 240


def test_infeasible_job_reports_reason():
    ctx, client = _setup()
    lyon = {"lat": 45.764, "lon": 4.8357}
    job_id = client.post(JOBS_PATH, json=_body(end=lyon)).json()["jobId"]
    ItineraryWorker.from_context(ctx).process_next()

    resp = client.get(f"{JOBS_PATH}/{job_id}")
    assert resp.status_code == 404
    body = resp.json()
    assert body["code"] == "NO_ITINERARY"
    assert body["reason"] == "commute_exceeds_budget"
    assert body["message"]


def test_invalid_and_unknown_job_ids():
    _, client = _setup()
    assert client.get(f"{JOBS_PATH}/not-a-uuid").status_code == 400

    resp = client.get(f"{JOBS_PATH}/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json() == {"code": "NO_ITINERARY", "reason": "Job not found or expired"}


def test_request_validation():
    _, client = _setup()
    assert client.post(JOBS_PATH, json=_body(maxDurationMinutes=30)).status_code == 422
    assert client.post(JOBS_PATH, json=_body(mode="teleport")).status_code == 422
    assert client.post(JOBS_PATH, json=_body(start={"lat": 100, "lon": 0})).status_code == 422


def test_enqueue_failure_fails_job_and_returns_500():
    ctx = make_app_context(job_settings=JobSettings(receive_wait_seconds=0))

    class _DownQueue:
        backend = "down"

        def enqueue(self, job_id):
            raise ConnectionError("queue unreachable")

        def approximate_count(self):
            return 0

    ctx.queue = _DownQueue()
    client = TestClient(create_app(ctx, embedded_workers=0))
    resp = client.post(JOBS_PATH, json=_body())
    assert resp.status_code == 500
    assert ctx.metrics.snapshot()["submitted"] == 0


def test_diagnostics_reports_backends():
    _, client = _setup()
    client.post(JOBS_PATH, json=_body())
    data = client.get("/diagnostics").json()
    assert data["store"] == "memory"
    assert data["queue_depth"] == 1
    assert data["tools"]["maps"] == "offline"
    assert data["metrics"]["submitted"] == 1
