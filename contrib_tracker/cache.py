"""In-memory TTL cache with a size cap."""

from __future__ import annotations

import time
from typing import Any

from .config import GUIDELINES_CACHE_SIZE, GUIDELINES_TTL

_MISSING = object()


class CacheStore:
    """Keyed cache with TTL expiry; the oldest entries go first past ``max_size``.

    ``None`` is a legitimate cached value (a negative lookup), so ``get``
    takes a ``default`` to tell a miss apart.
    """

    def __init__(self, ttl: float = GUIDELINES_TTL, max_size: int = GUIDELINES_CACHE_SIZE, clock=time.monotonic):
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            self._misses += 1
            return default
        self._hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), value)
        self._prune()

    def _prune(self) -> None:
        now = self._clock()
        for key in [k for k, (at, _) in self._entries.items() if now - at > self.ttl]:
            del self._entries[key]
        # dict order is insertion order, and set() re-inserts, so the head is oldest
        while len(self._entries) > self.max_size:
            del self._entries[next(iter(self._entries))]

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{self._hits / total * 100:.0f}%" if total else "n/a",
        }
