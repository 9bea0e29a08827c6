"""
Adaptive cache for MCP responses.

Builds on the pattern-tracking TTL cache with four independently
switchable tunings:

- dynamic TTL scaled by system load, per-key prediction accuracy and the
  recent hit rate;
- predictive warming of keys whose next read is expected within 30 minutes;
- load-aware batch eviction ranked by recency, frequency and regularity;
- periodic performance sampling that shrinks the baseline TTL when the hit
  rate is poor and resets accuracy tracking when predictions drift.
"""

import math
import time
from collections import deque
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

import structlog

from ..config.settings import CacheSettings
from ..core.exceptions import ConfigurationError
from ..core.scheduler import Clock, IntervalTask, Scheduler
from .base_cache import MAX_TTL_SECONDS, MIN_TTL_SECONDS, AccessPattern, PatternTrackingCache

logger = structlog.get_logger(__name__)

HIGH_LOAD = 80.0
MEDIUM_LOAD = 60.0
LOW_LOAD = 40.0
BASELINE_TTL_FLOOR = 30.0
PERFORMANCE_HISTORY_SIZE = 100

ValueLoader = Callable[[str], Awaitable[Any]]
LoadProvider = Callable[[], float]
ConfidenceProvider = Callable[[], Optional[float]]


@dataclass
class AdaptiveCacheConfig:
    """Configuration for the adaptive cache."""

    ttl_seconds: float = 300.0
    max_size: int = 1000
    stale_while_revalidate: bool = True
    ml_enabled: bool = True
    predictive_warming: bool = True
    dynamic_ttl: bool = True
    load_based_eviction: bool = True
    performance_optimization: bool = True
    warming_interval_seconds: float = 300.0
    performance_interval_seconds: float = 60.0
    warming_window_seconds: float = 1800.0
    max_warming_keys: int = 50

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if self.ttl_seconds <= 0:
            raise ConfigurationError("ttl_seconds must be positive")
        if self.max_size < 1:
            raise ConfigurationError("max_size must be at least 1")
        if self.warming_interval_seconds <= 0 or self.performance_interval_seconds <= 0:
            raise ConfigurationError("cache task intervals must be positive")
        if self.warming_window_seconds <= 0 or self.max_warming_keys < 1:
            raise ConfigurationError("warming window and key limit must be positive")

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "AdaptiveCacheConfig":
        return cls(
            ttl_seconds=settings.base_ttl_seconds,
            max_size=settings.max_size,
            ml_enabled=settings.ml_enabled,
            predictive_warming=settings.predictive_warming,
            dynamic_ttl=settings.dynamic_ttl,
            load_based_eviction=settings.load_based_eviction,
            performance_optimization=settings.performance_optimization,
            warming_interval_seconds=settings.warming_interval_seconds,
            performance_interval_seconds=settings.performance_interval_seconds,
        )


@dataclass
class CachePerformanceMetrics:
    """One performance sample."""

    hit_rate: float
    miss_rate: float
    avg_response_time: float
    memory_efficiency: float
    prediction_accuracy: float
    warming_effectiveness: float
    timestamp: Optional[datetime] = None


@dataclass
class PredictiveKey:
    """A key expected to be read soon."""

    key: str
    priority: int
    predicted_access_time: datetime
    confidence: float

    @property
    def score(self) -> float:
        return self.confidence * self.priority


@dataclass
class CachePerformanceReport:
    """Summary of the most recent samples."""

    summary: Optional[CachePerformanceMetrics]
    trends: Dict[str, List[float]] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)


class AdaptiveCache(PatternTrackingCache):
    """
    Pattern-tracking cache with load, prediction and feedback driven tuning.

    Collaborators are injected: ``value_loader`` fetches a value for
    warming, ``load_provider`` reports current system load (0-100) and
    ``confidence_provider`` supplies a fallback prediction accuracy for keys
    without their own.
    """

    def __init__(self,
                 config: Optional[AdaptiveCacheConfig] = None,
                 value_loader: Optional[ValueLoader] = None,
                 load_provider: Optional[LoadProvider] = None,
                 confidence_provider: Optional[ConfidenceProvider] = None,
                 clock: Optional[Clock] = None):
        config = config or AdaptiveCacheConfig()
        config.validate()
        super().__init__(
            ttl_seconds=config.ttl_seconds,
            max_size=config.max_size,
            stale_while_revalidate=config.stale_while_revalidate,
            clock=clock,
        )
        self.config = config
        self.value_loader = value_loader
        self.load_provider = load_provider
        self.confidence_provider = confidence_provider

        self._performance_history: Deque[CachePerformanceMetrics] = deque(maxlen=PERFORMANCE_HISTORY_SIZE)
        self._prediction_accuracy: Dict[str, float] = {}
        self._pending_predictions: Dict[str, datetime] = {}
        self._warmed_keys: Set[str] = set()
        self._warmed_hits: Set[str] = set()
        self._response_times: Deque[float] = deque(maxlen=1000)
        self._tasks: List[IntervalTask] = []

        logger.info("AdaptiveCache initialized",
                    ttl_seconds=config.ttl_seconds,
                    max_size=config.max_size,
                    dynamic_ttl=config.dynamic_ttl,
                    predictive_warming=config.predictive_warming)

    # Lifecycle

    def start(self, scheduler: Scheduler) -> None:
        """Register performance sampling and warming on the scheduler."""
        if self._tasks:
            logger.warning("Adaptive cache tasks already running")
            return

        self._tasks.append(scheduler.every(
            "cache-performance",
            self.config.performance_interval_seconds,
            self._performance_tick,
        ))
        if self.config.predictive_warming:
            self._tasks.append(scheduler.every(
                "cache-warming",
                self.config.warming_interval_seconds,
                self._warming_tick,
            ))

    def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    async def _performance_tick(self) -> None:
        self.collect_performance_metrics()

    async def _warming_tick(self) -> None:
        await self.perform_predictive_warming()

    # Reads

    def get(self, key: str, default: Any = None) -> Any:
        start = time.perf_counter()
        try:
            return super().get(key, default)
        finally:
            self._response_times.append((time.perf_counter() - start) * 1000)

    def _on_hit(self, key: str, now: datetime) -> None:
        predicted = self._pending_predictions.pop(key, None)
        pattern = self._patterns.get(key)
        if predicted is not None and pattern is not None and self.config.ml_enabled:
            mean_interval = pattern.mean_interval()
            if mean_interval > 0:
                error = abs((now - predicted).total_seconds())
                self._prediction_accuracy[key] = max(0.0, 1 - error / mean_interval)

        if key in self._warmed_keys:
            self._warmed_hits.add(key)

        super()._on_hit(key, now)

    # Dynamic TTL

    def calculate_optimal_ttl(self, key: str) -> float:
        if not self.config.dynamic_ttl:
            return super().calculate_optimal_ttl(key)

        if key not in self._patterns:
            return self.baseline_ttl

        base_ttl = super().calculate_optimal_ttl(key)
        final_ttl = (base_ttl
                     * self._load_adjustment()
                     * self._prediction_adjustment(key)
                     * self._performance_adjustment())
        return min(MAX_TTL_SECONDS, max(MIN_TTL_SECONDS, final_ttl))

    def current_load(self) -> Optional[float]:
        if self.load_provider is None:
            return None
        try:
            return float(self.load_provider())
        except Exception as e:
            logger.warning("Load provider failed", error=str(e))
            return None

    def _load_adjustment(self) -> float:
        load = self.current_load()
        if load is None:
            return 1.0
        if load > HIGH_LOAD:
            return 1.5
        if load > MEDIUM_LOAD:
            return 1.0
        return 0.7

    def _prediction_adjustment(self, key: str) -> float:
        if not self.config.ml_enabled:
            return 1.0
        accuracy = self._prediction_accuracy.get(key)
        if accuracy is None and self.confidence_provider is not None:
            accuracy = self.confidence_provider()
        if accuracy is None:
            accuracy = 0.5
        return 0.5 + accuracy

    def _performance_adjustment(self) -> float:
        if len(self._performance_history) < 5:
            return 1.0
        recent = list(self._performance_history)[-5:]
        avg_hit_rate = sum(m.hit_rate for m in recent) / len(recent)
        if avg_hit_rate > 0.8:
            return 1.2
        if avg_hit_rate < 0.5:
            return 0.8
        return 1.0

    # Predictive warming

    def generate_warming_predictions(self) -> List[PredictiveKey]:
        """Keys whose next read is expected within the warming window, best first."""
        now = self.clock.now()
        horizon = now + timedelta(seconds=self.config.warming_window_seconds)
        predictions = []

        for key, pattern in self._patterns.items():
            if len(pattern.access_times) < 3 or pattern.last_access is None:
                continue
            intervals = pattern.intervals()
            mean_interval = sum(intervals) / len(intervals)
            predicted = pattern.last_access + timedelta(seconds=mean_interval)
            if now < predicted < horizon:
                predictions.append(PredictiveKey(
                    key=key,
                    priority=pattern.hit_count,
                    predicted_access_time=predicted,
                    confidence=self._prediction_confidence(intervals),
                ))

        predictions.sort(key=lambda p: p.score, reverse=True)
        return predictions

    @staticmethod
    def _prediction_confidence(intervals: List[float]) -> float:
        if len(intervals) < 2:
            return 0.1
        mean = sum(intervals) / len(intervals)
        if mean <= 0:
            return 0.1
        std = math.sqrt(sum((i - mean) ** 2 for i in intervals) / len(intervals))
        return max(0.1, min(0.9, 1 - std / mean))

    async def perform_predictive_warming(self) -> int:
        """Pre-load keys predicted to be read soon. Returns how many were loaded."""
        if not self.config.predictive_warming:
            return 0

        candidates = self.generate_warming_predictions()[:self.config.max_warming_keys]
        warmed = 0
        for prediction in candidates:
            if self.config.ml_enabled:
                self._pending_predictions[prediction.key] = prediction.predicted_access_time
            if self.has(prediction.key):
                continue
            if self.value_loader is None:
                continue
            try:
                value = await self.value_loader(prediction.key)
            except Exception as e:
                logger.error("Failed to warm cache key", key=prediction.key, error=str(e))
                continue
            self.set(prediction.key, value)
            self._warmed_keys.add(prediction.key)
            self._warmed_hits.discard(prediction.key)
            warmed += 1

        logger.info("Predictive warming completed",
                    candidates=len(candidates),
                    warmed=warmed)
        return warmed

    # Eviction

    def evict(self) -> None:
        if not self.config.load_based_eviction:
            super().evict()
            return

        if self.prune() and len(self) < self.max_size:
            return

        load = self.current_load()
        ratio = 0.1
        if load is not None and load > HIGH_LOAD:
            ratio = 0.05
        elif load is not None and load < LOW_LOAD:
            ratio = 0.2

        keys = self.keys()
        batch = max(1, math.floor(len(keys) * ratio))
        now = self.clock.now()
        ranked = sorted(keys, key=lambda k: self._eviction_score(self._patterns.get(k), now))
        for key in ranked[:batch]:
            self.delete(key)
        self._stats.evictions += min(batch, len(ranked))
        logger.debug("Load-based eviction", evicted=min(batch, len(ranked)), load=load)

    @staticmethod
    def _eviction_score(pattern: Optional[AccessPattern], now: datetime) -> float:
        """Lower scores are evicted first."""
        if pattern is None or pattern.last_access is None:
            return 0.0
        recency = max(0.0, (now - pattern.last_access).total_seconds())
        mean_interval = pattern.mean_interval()
        prediction_score = 1 / mean_interval if mean_interval > 0 else 0.0
        return 1 / (recency + 1) + math.log(pattern.hit_count + 1) + prediction_score

    # Performance feedback

    def collect_performance_metrics(self) -> CachePerformanceMetrics:
        """Take one performance sample and apply self-tuning."""
        hit_rate = self._stats.hit_rate
        times = list(self._response_times)
        self._response_times.clear()

        metrics = CachePerformanceMetrics(
            hit_rate=hit_rate,
            miss_rate=1 - hit_rate,
            avg_response_time=sum(times) / len(times) if times else 0.0,
            memory_efficiency=len(self) / self.max_size,
            prediction_accuracy=self.overall_prediction_accuracy(),
            warming_effectiveness=self.warming_effectiveness(),
            timestamp=self.clock.now(),
        )
        self._performance_history.append(metrics)

        if self.config.performance_optimization:
            self._auto_optimize(metrics)
        return metrics

    def overall_prediction_accuracy(self) -> float:
        if not self._prediction_accuracy:
            return 0.5
        return sum(self._prediction_accuracy.values()) / len(self._prediction_accuracy)

    def warming_effectiveness(self) -> float:
        if not self._warmed_keys:
            return 0.0
        return len(self._warmed_hits & self._warmed_keys) / len(self._warmed_keys)

    def _auto_optimize(self, metrics: CachePerformanceMetrics) -> None:
        if metrics.hit_rate < 0.6 and self._stats.total_requests > 0:
            previous = self.baseline_ttl
            self.baseline_ttl = max(self.baseline_ttl * 0.8, BASELINE_TTL_FLOOR)
            logger.info("Reduced baseline TTL due to low hit rate",
                        hit_rate=round(metrics.hit_rate, 3),
                        previous_ttl=previous,
                        baseline_ttl=self.baseline_ttl)

        if metrics.memory_efficiency < 0.7 and metrics.hit_rate > 0.8:
            logger.info("Cache has headroom with a high hit rate; consider a larger cache",
                        memory_efficiency=round(metrics.memory_efficiency, 3))

        if metrics.prediction_accuracy < 0.6:
            self._prediction_accuracy.clear()
            logger.info("Prediction accuracy low; recalibrating access predictions",
                        prediction_accuracy=round(metrics.prediction_accuracy, 3))

    def generate_performance_report(self) -> CachePerformanceReport:
        history = list(self._performance_history)
        if not history:
            return CachePerformanceReport(summary=None)

        recent = history[-10:]
        n = len(recent)
        summary = CachePerformanceMetrics(
            hit_rate=sum(m.hit_rate for m in recent) / n,
            miss_rate=sum(m.miss_rate for m in recent) / n,
            avg_response_time=sum(m.avg_response_time for m in recent) / n,
            memory_efficiency=sum(m.memory_efficiency for m in recent) / n,
            prediction_accuracy=sum(m.prediction_accuracy for m in recent) / n,
            warming_effectiveness=sum(m.warming_effectiveness for m in recent) / n,
            timestamp=recent[-1].timestamp,
        )
        trends = {
            "hit_rate": [m.hit_rate for m in history],
            "response_time": [m.avg_response_time for m in history],
            "memory_usage": [m.memory_efficiency for m in history],
        }
        return CachePerformanceReport(
            summary=summary,
            trends=trends,
            recommendations=self._recommendations(summary),
        )

    @staticmethod
    def _recommendations(metrics: CachePerformanceMetrics) -> List[str]:
        recommendations = []
        if metrics.hit_rate < 0.7:
            recommendations.append("Cache hit rate is low. Review TTL settings or increase the cache size.")
        if metrics.avg_response_time > 100:
            recommendations.append("Average response time is high. Consider optimizing the cache algorithm.")
        if metrics.memory_efficiency > 0.9:
            recommendations.append("Memory usage is high. Adjust the eviction policy or increase the cache size.")
        if metrics.prediction_accuracy < 0.6:
            recommendations.append("Prediction accuracy is low. More access history is needed.")
        if metrics.warming_effectiveness < 0.4:
            recommendations.append("Predictive warming is ineffective. Revisit the warming strategy.")
        return recommendations

    # Status and configuration

    def get_optimization_status(self) -> Dict[str, Any]:
        latest = self._performance_history[-1] if self._performance_history else None
        return {
            "ml_enabled": self.config.ml_enabled,
            "predictive_warming": self.config.predictive_warming,
            "dynamic_ttl": self.config.dynamic_ttl,
            "load_based_eviction": self.config.load_based_eviction,
            "performance_optimization": self.config.performance_optimization,
            "baseline_ttl_seconds": self.baseline_ttl,
            "size": len(self),
            "max_size": self.max_size,
            "tracked_patterns": len(self._patterns),
            "tracked_accuracies": len(self._prediction_accuracy),
            "warmed_keys": len(self._warmed_keys),
            "performance_samples": len(self._performance_history),
            "latest_hit_rate": latest.hit_rate if latest else None,
        }

    def update_config(self, **changes: Any) -> AdaptiveCacheConfig:
        """Apply and validate configuration changes."""
        known = {f.name for f in fields(AdaptiveCacheConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown cache settings: {sorted(unknown)}")

        config = replace(self.config, **changes)
        config.validate()
        self.config = config

        self.max_size = config.max_size
        self.stale_while_revalidate = config.stale_while_revalidate
        if "ttl_seconds" in changes:
            self.default_ttl = config.ttl_seconds
            self.baseline_ttl = config.ttl_seconds

        logger.info("Adaptive cache configuration updated", changes=sorted(changes))
        return config

    @property
    def performance_history(self) -> List[CachePerformanceMetrics]:
        return list(self._performance_history)
