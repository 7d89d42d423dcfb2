import pytest
from pydantic import ValidationError

from itinerary_jobs.config.settings import (
    JobSettings,
    PlannerSettings,
    load_job_settings,
    load_planner_settings,
    resolve_provider_snapshot,
)
from itinerary_jobs.domain.enums import TravelMode


def test_planner_settings_from_env(monkeypatch):
    monkeypatch.setenv("ITINERARY_MAX_POIS", "7")
    monkeypatch.setenv("SEARCH_RADIUS_MODE", "FIXED")
    monkeypatch.setenv("AVG_SPEED_KMH_WALKING", "4.5")
    monkeypatch.setenv("DEFAULT_CATEGORIES", "Park, Museum")
    monkeypatch.setenv("STRICT_OPENING_HOURS", "off")
    monkeypatch.setenv("RERANK_TOP_N", "not-a-number")

    settings = load_planner_settings()
    assert settings.max_pois == 7
    assert settings.search_radius_mode == "fixed"
    assert settings.avg_speed_kmh[TravelMode.WALKING] == 4.5
    assert settings.avg_speed_kmh[TravelMode.CAR] == 40.0
    assert settings.default_categories == ["park", "museum"]
    assert settings.strict_opening_hours is False
    assert settings.rerank_top_n == 15


def test_planner_settings_reject_bad_bounds():
    with pytest.raises(ValidationError):
        PlannerSettings(dwell_floor_minutes=200, dwell_ceiling_minutes=100)
    with pytest.raises(ValidationError):
        PlannerSettings(avg_speed_kmh={TravelMode.WALKING: 0, TravelMode.CAR: 40, TravelMode.PUBLIC_TRANSPORT: 20})


def test_dwell_helpers():
    settings = PlannerSettings()
    assert settings.dwell_default_for("Museum") == 90
    assert settings.dwell_default_for("spaceport") == settings.fallback_dwell_minutes
    assert settings.clamp_dwell(5) == 20
    assert settings.clamp_dwell(500) == 180


def test_job_settings_from_env(monkeypatch):
    monkeypatch.setenv("JOB_STORE_BACKEND", "sqlite")
    monkeypatch.setenv("JOB_STORE_DB", "/tmp/jobs.sqlite3")
    monkeypatch.setenv("QUEUE_VISIBILITY_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("DEADLINE_MARGIN_SECONDS", "20")

    settings = load_job_settings()
    assert settings.store_backend == "sqlite"
    assert settings.store_db_path == "/tmp/jobs.sqlite3"
    assert settings.planning_budget_seconds == 100.0


def test_planning_budget_never_below_one_second():
    assert JobSettings(visibility_timeout_seconds=10, deadline_margin_seconds=30).planning_budget_seconds == 1.0


def test_provider_snapshot_reflects_env(monkeypatch):
    snapshot = resolve_provider_snapshot()
    assert snapshot.maps_provider == "offline"
    assert snapshot.llm_provider == "keyword"
    assert snapshot.work_queue == "memory"

    monkeypatch.setenv("LLM_API_KEY", "compat-key")
    assert resolve_provider_snapshot().llm_provider == "llm_compatible"
