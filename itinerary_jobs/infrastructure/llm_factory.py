"""LLM factory: decide from the environment whether a chat model is available.

Supported variables (in priority order):
  OPENAI_API_KEY  -> OpenAI
  LLM_API_KEY     -> any OpenAI-compatible endpoint (set LLM_BASE_URL)

Optional:
  LLM_MODEL            model name, default gpt-4o-mini
  LLM_BASE_URL         custom base url
  LLM_TIMEOUT_SECONDS  per call timeout, default 30
"""

from __future__ import annotations

import os
from typing import Optional

from langchain_openai import ChatOpenAI

from itinerary_jobs.security.key_manager import LLM_KEY_NAMES, get_key_manager

_OPENAI_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "gpt-4o-mini"


def _resolve_config() -> tuple[str, str, str] | None:
    """Return ``(api_key, base_url, model)`` or None."""
    km = get_key_manager()
    for name in LLM_KEY_NAMES:
        key = km.get(name)
        if key:
            return (
                key,
                os.getenv("LLM_BASE_URL", _OPENAI_BASE_URL),
                os.getenv("LLM_MODEL", _DEFAULT_MODEL),
            )
    return None


def build_llm() -> Optional[ChatOpenAI]:
    """Create a chat model client, or None when no key is configured."""
    cfg = _resolve_config()
    if cfg is None:
        return None
    api_key, base_url, model = cfg
    return ChatOpenAI(
        model=model,
        temperature=0,
        api_key=api_key,
        base_url=base_url,
        timeout=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
        max_retries=1,
    )
