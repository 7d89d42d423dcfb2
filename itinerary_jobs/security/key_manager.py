"""Centralized provider key access.

Provider adapters read keys through this module instead of ``os.getenv`` so
that every known key value can be scrubbed from logs and error messages.
"""

from __future__ import annotations

import os
import threading
import time
from typing import Optional

from itinerary_jobs.security.redact import redact_sensitive
from itinerary_jobs.shared.exceptions import KeyMissingError

LLM_KEY_NAMES = ("OPENAI_API_KEY", "LLM_API_KEY")
MAPS_KEY_NAME = "AZURE_MAPS_KEY"


class _KeyEntry:
    __slots__ = ("value", "loaded_at", "source")

    def __init__(self, value: str, source: str):
        self.value = value
        self.loaded_at = time.time()
        self.source = source


class KeyManager:
    def __init__(self) -> None:
        self._keys: dict[str, _KeyEntry] = {}
        self._lock = threading.Lock()

    def get(self, name: str, *, required: bool = False) -> Optional[str]:
        with self._lock:
            entry = self._keys.get(name)
            if entry is None:
                raw = os.getenv(name, "")
                if not raw:
                    if required:
                        raise KeyMissingError(name)
                    return None
                entry = _KeyEntry(value=raw, source="env")
                self._keys[name] = entry
            return entry.value

    def get_maps_key(self, *, required: bool = True) -> str:
        return self.get(MAPS_KEY_NAME, required=required) or ""

    def get_llm_key(self) -> Optional[str]:
        for name in LLM_KEY_NAMES:
            value = self.get(name)
            if value:
                return value
        return None

    def has_key(self, name: str) -> bool:
        with self._lock:
            if name in self._keys:
                return True
        return bool(os.getenv(name, ""))

    @staticmethod
    def redact(value: str) -> str:
        """Keep the first and last four characters only."""
        if not value or len(value) <= 8:
            return "****"
        return value[:4] + "****" + value[-4:]

    def scrub_text(self, text: str) -> str:
        """Erase every loaded key value from ``text``."""
        result = str(text) if text is not None else ""
        with self._lock:
            entries = list(self._keys.items())
        for name, entry in entries:
            if entry.value and entry.value in result:
                result = result.replace(entry.value, f"[{name}:***REDACTED***]")
        return redact_sensitive(result)

    def reload(self, name: str) -> None:
        """Re-read a key from the environment (key rotation, tests)."""
        raw = os.getenv(name, "")
        with self._lock:
            if raw:
                self._keys[name] = _KeyEntry(value=raw, source="env")
            else:
                self._keys.pop(name, None)


_manager: Optional[KeyManager] = None
_manager_lock = threading.Lock()


def get_key_manager() -> KeyManager:
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = KeyManager()
        return _manager
