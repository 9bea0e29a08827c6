"""In-memory caching with adaptive TTL, predictive warming and load-aware eviction."""

from .adaptive_cache import (
    AdaptiveCache,
    AdaptiveCacheConfig,
    CachePerformanceMetrics,
    CachePerformanceReport,
    PredictiveKey,
)
from .base_cache import AccessPattern, BoundedTTLCache, CacheStats, PatternTrackingCache

__all__ = [
    "BoundedTTLCache",
    "PatternTrackingCache",
    "AccessPattern",
    "CacheStats",
    "AdaptiveCache",
    "AdaptiveCacheConfig",
    "CachePerformanceMetrics",
    "CachePerformanceReport",
    "PredictiveKey",
]
