"""Chat-model backed text providers.

Every provider takes an object with ``.invoke(prompt) -> message`` (a
langchain chat model) so tests can pass a stub.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from itinerary_jobs.adapters.language.keyword import KeywordInterestMapper
from itinerary_jobs.domain.models import CandidatePoi, LocationPoint
from itinerary_jobs.security.redact import redact_sensitive
from itinerary_jobs.shared.exceptions import ToolError
from itinerary_jobs.tools.interfaces import DwellEstimate, RerankInput, RerankResult

_logger = logging.getLogger("itinerary-jobs.llm")


def _message_text(resp: Any) -> str:
    content = resp.content if hasattr(resp, "content") else str(resp)
    return str(content or "").strip()


def _strip_fences(content: str) -> str:
    # Models sometimes wrap JSON in ```json fences.
    if content.startswith("```"):
        lines = content.split("\n")
        content = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    return content.strip()


def invoke_json(llm: Any, prompt: str, tool: str) -> Any:
    try:
        resp = llm.invoke(prompt)
    except Exception as exc:
        raise ToolError(tool, f"model call failed: {redact_sensitive(str(exc))}", kind="unavailable") from None
    try:
        return json.loads(_strip_fences(_message_text(resp)))
    except json.JSONDecodeError:
        raise ToolError(tool, "model did not return valid JSON", kind="bad_response") from None


class LlmInterestMapper:
    name = "llm"

    def __init__(self, llm: Any, allowed_categories: Iterable[str], fallback: KeywordInterestMapper | None = None):
        self._llm = llm
        self._allowed = list(allowed_categories)
        self._fallback = fallback or KeywordInterestMapper()

    def map_interests(self, text: str, language: str, area: LocationPoint) -> list[str]:
        if not (text or "").strip():
            return []
        prompt = (
            "You map a traveller's interests to point-of-interest categories.\n"
            f"Allowed category ids: {', '.join(self._allowed)}.\n"
            f"Area: lat={area.lat:.4f}, lon={area.lon:.4f}. Interest language: {language}.\n"
            'Return JSON only: {"categoryIds": ["..."]}, most relevant first, at most 6 ids.\n'
            f"Interests: {text}"
        )
        try:
            data = invoke_json(self._llm, prompt, "llm_interest_mapper")
        except ToolError as exc:
            _logger.warning("Interest mapping via model failed, using keyword table: %s", exc)
            return self._fallback.map_interests(text, language, area)

        raw_ids = data.get("categoryIds", []) if isinstance(data, dict) else []
        mapped: list[str] = []
        for item in raw_ids:
            category = str(item).strip().lower()
            if category in self._allowed and category not in mapped:
                mapped.append(category)
        return mapped or self._fallback.map_interests(text, language, area)


class LlmDwellEstimator:
    name = "llm"

    def __init__(self, llm: Any):
        self._llm = llm

    def estimate_dwell(
        self,
        poi: CandidatePoi,
        language: str,
        defaults: dict[str, int],
        floor: int,
        ceiling: int,
    ) -> DwellEstimate:
        prompt = (
            "Estimate the minimum minutes a typical visitor should spend at this place.\n"
            f"Name: {poi.name}\nCategory: {poi.category}\nAddress: {poi.address}\n"
            f"Typical minutes per category: {json.dumps(defaults)}\n"
            f"Answer between {floor} and {ceiling}.\n"
            'Return JSON only: {"estimatedMinutes": 45, "confident": true}'
        )
        data = invoke_json(self._llm, prompt, "llm_dwell")
        try:
            minutes = int(data["estimatedMinutes"])
        except (KeyError, TypeError, ValueError):
            raise ToolError("llm_dwell", "estimatedMinutes missing from model output", kind="bad_response") from None
        return DwellEstimate(
            minutes=max(floor, min(ceiling, minutes)),
            low_confidence=not bool(data.get("confident", True)),
        )


class LlmReranker:
    name = "llm"

    def __init__(self, llm: Any):
        self._llm = llm

    def rerank(self, params: RerankInput) -> RerankResult:
        rows = [
            {
                "id": poi.id,
                "name": poi.name,
                "category": poi.category,
                "rating": poi.rating,
                "minutes": poi.visit_minutes,
            }
            for poi in params.candidates
        ]
        prompt = (
            "Order these places for a single-day itinerary.\n"
            f"Interests: {params.interests or 'general sightseeing'}\n"
            f"Travel mode: {params.mode.value}. Time budget: {params.time_budget_minutes} minutes.\n"
            f"Prefer variety and at most {params.max_count} strong picks first.\n"
            f"Places: {json.dumps(rows, ensure_ascii=False)}\n"
            f"Write the reasoning in language '{params.language}'.\n"
            'Return JSON only: {"rankedIds": ["..."], "reasoning": "..."}'
        )
        data = invoke_json(self._llm, prompt, "llm_rerank")
        if not isinstance(data, dict) or not isinstance(data.get("rankedIds"), list):
            raise ToolError("llm_rerank", "rankedIds missing from model output", kind="bad_response")
        return RerankResult(
            ordered_ids=[str(item) for item in data["rankedIds"]],
            rationale=str(data.get("reasoning") or ""),
        )


class LlmDescriptionWriter:
    name = "llm"

    def __init__(self, llm: Any):
        self._llm = llm

    def describe(self, poi: CandidatePoi, language: str) -> str:
        prompt = (
            f"Write one or two sentences for a traveller, in language '{language}', "
            f"describing {poi.name} ({poi.category}) at {poi.address or 'this location'}. "
            f"Known facts: {poi.description or 'none'}. Plain text only."
        )
        try:
            text = _message_text(self._llm.invoke(prompt))
        except Exception as exc:
            raise ToolError("llm_describe", f"model call failed: {redact_sensitive(str(exc))}") from None
        return text or poi.description or poi.name
