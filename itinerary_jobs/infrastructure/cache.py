"""Thread-safe LRU cache for routed legs."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Any, Hashable, Optional

from itinerary_jobs.domain.enums import TravelMode
from itinerary_jobs.domain.models import LocationPoint

# ~0.1 m; points closer than this share a route.
_COORD_DIGITS = 6


class RouteCache:
    def __init__(self, max_size: int = 1000):
        self._store: OrderedDict[Hashable, Any] = OrderedDict()
        self._max_size = max_size
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def key(origin: LocationPoint, destination: LocationPoint, mode: TravelMode) -> tuple:
        return (
            round(origin.lat, _COORD_DIGITS),
            round(origin.lon, _COORD_DIGITS),
            round(destination.lat, _COORD_DIGITS),
            round(destination.lon, _COORD_DIGITS),
            mode.value,
        )

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            if key not in self._store:
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return self._store[key]

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store[key] = value
            self._store.move_to_end(key)
            while len(self._store) > self._max_size:
                self._store.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    @property
    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
        }
