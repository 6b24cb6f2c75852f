"""
Run-scoped memoization for registry lookups.

Registry URL selection, auth token resolution, URL normalization and
repository info URLs are computed once per distinct input during a run.
The cache is owned by the run that creates it, so nothing leaks between
runs or tests.
"""

from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheKey:
    """Cache key for a memoized lookup."""

    namespace: str
    value: Hashable


class CacheStats:
    """Hit and miss counters, reported with the run summary."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self._lock = Lock()

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    def record(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate_percent": round(self.hits * 100.0 / total, 1) if total else 0.0,
            }

    def reset(self) -> None:
        with self._lock:
            self.hits = 0
            self.misses = 0


class LookupCache:
    """
    Mapping from lookup input to result, scoped to a single run.

    Args:
        enabled: When False every lookup is recomputed (still counted as a miss)
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.stats = CacheStats()
        self._entries: Dict[CacheKey, Any] = {}
        self._lock = Lock()

    def get_or_compute(
        self, namespace: str, value: Hashable, factory: Callable[[], T]
    ) -> T:
        key = CacheKey(namespace, value)
        if self.enabled:
            with self._lock:
                if key in self._entries:
                    self.stats.record(hit=True)
                    return self._entries[key]

        self.stats.record(hit=False)
        result = factory()

        if self.enabled:
            with self._lock:
                self._entries[key] = result
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        self.stats.reset()
