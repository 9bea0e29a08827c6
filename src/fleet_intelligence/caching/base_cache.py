"""
In-memory TTL caches.

``BoundedTTLCache`` is a size-bounded map with per-entry TTL, LRU eviction
and hit/miss counters. ``PatternTrackingCache`` additionally records when
each key is read and derives a TTL from the observed access intervals.
"""

import math
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import structlog

from ..core.scheduler import Clock, SystemClock

logger = structlog.get_logger(__name__)

MIN_TTL_SECONDS = 10.0
MAX_TTL_SECONDS = 24 * 60 * 60.0
MAX_ACCESS_TIMES = 100

EvictCallback = Callable[[str, Any], None]


@dataclass
class CacheEntry:
    """A cached value with its freshness metadata."""

    value: Any
    created_at: datetime
    ttl_seconds: float
    last_access: datetime
    hits: int = 0

    def is_valid(self, now: datetime) -> bool:
        return (now - self.created_at).total_seconds() < self.ttl_seconds


@dataclass
class CacheStats:
    """Cache performance counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        return self.hits / total if total > 0 else 0.0


@dataclass
class AccessPattern:
    """Read history for one key."""

    key: str
    access_times: Deque[datetime] = field(default_factory=lambda: deque(maxlen=MAX_ACCESS_TIMES))
    hit_count: int = 0
    last_access: Optional[datetime] = None

    def intervals(self) -> List[float]:
        """Seconds between consecutive recorded reads."""
        times = list(self.access_times)
        return [(b - a).total_seconds() for a, b in zip(times, times[1:])]

    def mean_interval(self) -> float:
        intervals = self.intervals()
        return sum(intervals) / len(intervals) if intervals else 0.0


class BoundedTTLCache:
    """Size-bounded TTL cache with least-recently-used eviction."""

    def __init__(self,
                 ttl_seconds: float = 300.0,
                 max_size: int = 1000,
                 stale_while_revalidate: bool = True,
                 on_evict: Optional[EvictCallback] = None,
                 clock: Optional[Clock] = None):
        self.default_ttl = ttl_seconds
        self.max_size = max_size
        self.stale_while_revalidate = stale_while_revalidate
        self.on_evict = on_evict
        self.clock = clock or SystemClock()

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._stats = CacheStats()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss."""
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return default

        now = self.clock.now()
        if not entry.is_valid(now) and not self.stale_while_revalidate:
            self.delete(key)
            self._stats.misses += 1
            return default

        entry.last_access = now
        entry.hits += 1
        self._entries.move_to_end(key)
        self._stats.hits += 1
        self._on_hit(key, now)
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self.evict()

        now = self.clock.now()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            ttl_seconds=ttl_seconds or self.default_ttl,
            last_access=now,
        )
        self._entries.move_to_end(key)

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_valid(self.clock.now())

    def delete(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        if self.on_evict is not None:
            self.on_evict(key, entry.value)
        return True

    def clear(self) -> None:
        for key in list(self._entries):
            self.delete(key)

    def keys(self) -> List[str]:
        return list(self._entries)

    def values(self) -> List[Any]:
        now = self.clock.now()
        return [e.value for e in self._entries.values() if e.is_valid(now)]

    def entries(self) -> List[Tuple[str, Any]]:
        now = self.clock.now()
        return [(k, e.value) for k, e in self._entries.items() if e.is_valid(now)]

    def ttl_of(self, key: str) -> Optional[float]:
        entry = self._entries.get(key)
        return entry.ttl_seconds if entry else None

    def prune(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self.clock.now()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for key in expired:
            self.delete(key)
        self._stats.evictions += len(expired)
        if expired:
            logger.debug("Pruned expired cache entries", count=len(expired))
        return len(expired)

    def evict(self) -> None:
        """Make room for one new entry."""
        self._evict_lru()

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        key = next(iter(self._entries))
        self.delete(key)
        self._stats.evictions += 1

    def _on_hit(self, key: str, now: datetime) -> None:
        pass

    def get_stats(self) -> Dict[str, Any]:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "evictions": self._stats.evictions,
            "size": len(self._entries),
            "hit_rate": self._stats.hit_rate,
        }

    def reset_stats(self) -> None:
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)


class PatternTrackingCache(BoundedTTLCache):
    """TTL cache that sizes each key's TTL from how often it is read."""

    def __init__(self, *args: Any, adaptive_ttl: bool = True, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.adaptive_ttl = adaptive_ttl
        self.baseline_ttl = self.default_ttl
        self._patterns: Dict[str, AccessPattern] = {}

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if self.adaptive_ttl:
            ttl_seconds = self.calculate_optimal_ttl(key)
        super().set(key, value, ttl_seconds or self.baseline_ttl)

    def _on_hit(self, key: str, now: datetime) -> None:
        if not self.adaptive_ttl:
            return
        pattern = self._patterns.get(key)
        if pattern is None:
            pattern = AccessPattern(key=key)
            self._patterns[key] = pattern
        pattern.access_times.append(now)
        pattern.hit_count += 1
        pattern.last_access = now

    def calculate_optimal_ttl(self, key: str) -> float:
        """Mean read interval plus two standard deviations, bounded to [10s, 24h]."""
        pattern = self._patterns.get(key)
        if pattern is None or len(pattern.access_times) < 2:
            return self.baseline_ttl

        intervals = pattern.intervals()
        mean = sum(intervals) / len(intervals)
        std = math.sqrt(sum((i - mean) ** 2 for i in intervals) / len(intervals))
        return min(MAX_TTL_SECONDS, max(MIN_TTL_SECONDS, mean + 2 * std))

    def get_access_patterns(self) -> Dict[str, AccessPattern]:
        return dict(self._patterns)
