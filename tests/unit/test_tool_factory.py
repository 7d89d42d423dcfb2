import pytest

from itinerary_jobs.adapters.fault_injection import FaultInjectedToolProxy, wrap_tool_with_fault_injection
from itinerary_jobs.adapters.language.keyword import KeywordInterestMapper
from itinerary_jobs.adapters.language.llm import LlmInterestMapper, LlmReranker
from itinerary_jobs.adapters.maps.azure import AzureMapsProvider
from itinerary_jobs.adapters.maps.offline import OfflineMapsProvider
from itinerary_jobs.adapters.tool_factory import build_providers, describe_active_tools
from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.security.key_manager import get_key_manager
from itinerary_jobs.shared.exceptions import ToolError


class _StubLlm:
    def invoke(self, prompt):
        raise RuntimeError("not used")


def test_offline_defaults_without_keys():
    providers = build_providers(PlannerSettings())
    assert isinstance(providers.poi_search, OfflineMapsProvider)
    assert isinstance(providers.interest_mapper, KeywordInterestMapper)
    assert providers.reranker is None
    assert providers.describer is None
    assert describe_active_tools()["maps"] == "offline"


def test_llm_enables_optional_tools():
    providers = build_providers(PlannerSettings(), llm=_StubLlm())
    assert isinstance(providers.interest_mapper, LlmInterestMapper)
    assert isinstance(providers.reranker, LlmReranker)
    assert providers.describer is not None


def test_allowlist_can_disable_reranking(monkeypatch):
    monkeypatch.setenv("TOOL_ALLOWLIST", "interests,poi,dwell,route,timezone")
    providers = build_providers(PlannerSettings(), llm=_StubLlm())
    assert providers.reranker is None
    assert providers.describer is None


def test_allowlist_cannot_block_essential_tools(monkeypatch):
    monkeypatch.setenv("TOOL_ALLOWLIST", "interests,poi")
    with pytest.raises(ToolError):
        build_providers(PlannerSettings())


def test_strict_external_data_requires_maps_key(monkeypatch):
    monkeypatch.setenv("STRICT_EXTERNAL_DATA", "true")
    with pytest.raises(ToolError):
        build_providers(PlannerSettings())

    monkeypatch.setenv("AZURE_MAPS_KEY", "strict-key-abcdef")
    get_key_manager().reload("AZURE_MAPS_KEY")
    providers = build_providers(PlannerSettings())
    assert isinstance(providers.route, AzureMapsProvider)


def test_fault_injection_wraps_selected_tools(monkeypatch):
    monkeypatch.setenv("ENABLE_TOOL_FAULT_INJECTION", "true")
    monkeypatch.setenv("TOOL_FAULT_INJECTION", "poi:timeout")
    monkeypatch.setenv("TOOL_FAULT_RATE", "1.0")
    providers = build_providers(PlannerSettings())

    assert isinstance(providers.poi_search, FaultInjectedToolProxy)
    with pytest.raises(ToolError) as exc_info:
        providers.poi_search.search_pois(None)
    assert exc_info.value.kind == "timeout"
    # Same maps provider, but no fault configured for timezone lookups.
    assert providers.timezone.timezone_for(None) == "Europe/Paris"


def test_fault_injection_disabled_returns_target():
    target = KeywordInterestMapper()
    assert wrap_tool_with_fault_injection("interests", target) is target
    assert wrap_tool_with_fault_injection("rerank", None) is None
