"""Global pytest fixtures: keep tests off real providers and shared backends."""

import pytest


@pytest.fixture(autouse=True)
def no_real_apis(monkeypatch):
    """Offline providers, in-memory store and queue for every test."""
    for name in (
        "AZURE_MAPS_KEY",
        "OPENAI_API_KEY",
        "LLM_API_KEY",
        "REDIS_URL",
        "RATE_LIMIT_REDIS_URL",
        "STRICT_EXTERNAL_DATA",
        "TOOL_ALLOWLIST",
        "ENABLE_TOOL_FAULT_INJECTION",
        "JOB_STORE_BACKEND",
        "RUN_EMBEDDED_WORKERS",
        "SEARCH_RADIUS_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    from itinerary_jobs.security.key_manager import get_key_manager

    km = get_key_manager()
    for key_name in ("AZURE_MAPS_KEY", "OPENAI_API_KEY", "LLM_API_KEY"):
        km.reload(key_name)
    yield
