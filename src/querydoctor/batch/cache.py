"""
Shared result cache for batch analysis.

An LRU map with a per-entry expiry, guarded by a lock so it is safe to
use from concurrent tasks and from worker threads alike.

Example:
    cache = ResultCache(ttl_seconds=1800, max_entries=100)
    key = cache_key(target, quick_mode=False)

    cached = cache.get(key)
    if cached is None:
        cached = await analyze(target)
        cache.set(key, cached)
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from querydoctor.batch.models import AnalysisTarget


def analysis_mode(quick_mode: bool) -> str:
    return "quick" if quick_mode else "full"


def target_fingerprint(connection_identifier: str, quick_mode: bool) -> str:
    """First 8 hex chars of md5("<connection>_<mode>")."""
    material = f"{connection_identifier}_{analysis_mode(quick_mode)}"
    return hashlib.md5(material.encode("utf-8")).hexdigest()[:8]


def cache_key(target: "AnalysisTarget", quick_mode: bool) -> str:
    return f"batch_{target.id}_{target_fingerprint(target.connection_identifier, quick_mode)}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ResultCache:
    """
    Thread-safe LRU cache with per-entry TTL.

    Expired entries are removed lazily on access; the least recently used
    entry is evicted when a new key would exceed ``max_entries``.
    """

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Any | None:
        """Cached value if present and not expired, otherwise None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cached entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }
