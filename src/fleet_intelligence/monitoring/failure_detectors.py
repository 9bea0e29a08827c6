"""
Failure detectors run against a service forecast.

Each detector returns at most one FailurePrediction. Detected failures are
remembered per service so later ticks can match the current forecast
against the signatures of earlier ones.
"""

from collections import deque
from datetime import timedelta
from typing import Deque, Dict, List, Optional, Sequence

import structlog

from ..analysis.time_series import TimeSeriesAnalyzer
from ..prediction.resource_predictor import ResourcePrediction
from .models import ActionType, FailurePrediction, FailureType, RecommendedAction, Severity

logger = structlog.get_logger(__name__)

SIGNATURE_LENGTH = 10
FAILURE_HISTORY_SIZE = 50
MIN_PATTERN_HISTORY = 3
PATTERN_SIMILARITY_THRESHOLD = 0.8

CPU_EXHAUSTION_PEAK = 95.0
CPU_SUSTAINED_LEVEL = 90.0
CPU_SUSTAINED_SHARE = 0.3
CPU_CRITICAL_PEAK = 98.0

MEMORY_LEAK_SLOPE = 0.5
MEMORY_LEAK_FLOOR = 80.0
MEMORY_CRITICAL_SLOPE = 1.0
MEMORY_FAILURE_LEVEL = 95.0

LATENCY_FAILURE_PEAK = 2000.0
LATENCY_SLOW_MS = 1000.0
LATENCY_SLOW_SHARE = 0.2
LATENCY_CRITICAL_PEAK = 5000.0
LATENCY_FAILURE_LEVEL = 3000.0


def estimate_time_to_failure(data: Sequence[float], threshold: float) -> Optional[timedelta]:
    """
    Minutes until a linear trend starting at data[0] reaches ``threshold``.

    Returns None when the series is flat or falling, and zero when the
    threshold has already been crossed.
    """
    if not data:
        return None
    slope = TimeSeriesAnalyzer.calculate_trend(data)
    if slope <= 0:
        return None
    minutes = (threshold - data[0]) / slope
    return timedelta(minutes=max(0.0, minutes))


def extract_signature(prediction: ResourcePrediction) -> List[float]:
    return list(prediction.predictions.cpu[:SIGNATURE_LENGTH])


def pattern_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Absolute Pearson correlation; 0 for signatures of different length."""
    if len(a) != len(b):
        return 0.0
    return abs(TimeSeriesAnalyzer.calculate_correlation(a, b))


class FailureDetector:
    """Runs the four failure detectors and keeps the per-service failure history."""

    def __init__(self, history_size: int = FAILURE_HISTORY_SIZE):
        self.history_size = history_size
        self._history: Dict[str, Deque[FailurePrediction]] = {}

    def detect(self, service: str, prediction: ResourcePrediction) -> List[FailurePrediction]:
        """Run every detector for one service and remember what they found."""
        signature = extract_signature(prediction)
        failures = [
            failure for failure in (
                self.detect_cpu_exhaustion(service, prediction, signature),
                self.detect_memory_leak(service, prediction, signature),
                self.detect_latency_degradation(service, prediction, signature),
            )
            if failure is not None
        ]
        pattern = self.detect_historical_pattern(service, prediction, signature)

        for failure in failures:
            self.record(failure)
        if pattern is not None:
            failures.append(pattern)
        return failures

    def record(self, failure: FailurePrediction) -> None:
        history = self._history.get(failure.service)
        if history is None:
            history = deque(maxlen=self.history_size)
            self._history[failure.service] = history
        history.append(failure)

    def history(self, service: str) -> List[FailurePrediction]:
        return list(self._history.get(service, ()))

    def historical_similarity(self,
                              service: str,
                              failure_type: FailureType,
                              signature: Sequence[float]) -> float:
        """Best similarity against stored failures of the same type."""
        scores = [
            pattern_similarity(signature, past.signature)
            for past in self._history.get(service, ())
            if past.failure_type == failure_type
        ]
        return max(scores, default=0.0)

    def detect_cpu_exhaustion(self,
                              service: str,
                              prediction: ResourcePrediction,
                              signature: List[float]) -> Optional[FailurePrediction]:
        cpu = prediction.predictions.cpu
        if not cpu:
            return None
        peak = max(cpu)
        sustained = sum(1 for value in cpu if value > CPU_SUSTAINED_LEVEL)
        if not (peak > CPU_EXHAUSTION_PEAK or sustained > len(cpu) * CPU_SUSTAINED_SHARE):
            return None

        return FailurePrediction(
            service=service,
            failure_type=FailureType.RESOURCE,
            probability=min(0.95, peak / 100),
            confidence=prediction.confidence,
            estimated_time_to_failure=estimate_time_to_failure(cpu, CPU_EXHAUSTION_PEAK),
            severity=Severity.CRITICAL if peak > CPU_CRITICAL_PEAK else Severity.HIGH,
            root_causes=["High CPU utilization", "Insufficient compute resources"],
            recommendations=[
                RecommendedAction(
                    type=ActionType.SCALE,
                    priority=1,
                    description="Scale up service replicas",
                    estimated_effectiveness=0.9,
                    estimated_duration=timedelta(minutes=2),
                    automatable=True,
                    cost_impact=50.0,
                ),
                RecommendedAction(
                    type=ActionType.INVESTIGATE,
                    priority=2,
                    description="Investigate CPU-intensive processes",
                    estimated_effectiveness=0.7,
                    estimated_duration=timedelta(minutes=30),
                    automatable=False,
                ),
            ],
            historical_similarity=self.historical_similarity(service, FailureType.RESOURCE, signature),
            signature=signature,
        )

    def detect_memory_leak(self,
                           service: str,
                           prediction: ResourcePrediction,
                           signature: List[float]) -> Optional[FailurePrediction]:
        memory = prediction.predictions.memory
        if not memory:
            return None
        slope = TimeSeriesAnalyzer.calculate_trend(memory)
        peak = max(memory)
        if not (slope > MEMORY_LEAK_SLOPE and peak > MEMORY_LEAK_FLOOR):
            return None

        return FailurePrediction(
            service=service,
            failure_type=FailureType.RESOURCE,
            probability=min(0.9, slope + peak / 100),
            confidence=prediction.confidence * 0.9,
            estimated_time_to_failure=estimate_time_to_failure(memory, MEMORY_FAILURE_LEVEL),
            severity=Severity.CRITICAL if slope > MEMORY_CRITICAL_SLOPE else Severity.HIGH,
            root_causes=["Memory leak detected", "Insufficient memory allocation"],
            recommendations=[
                RecommendedAction(
                    type=ActionType.RESTART,
                    priority=1,
                    description="Restart service to clear memory leak",
                    estimated_effectiveness=0.95,
                    estimated_duration=timedelta(minutes=1),
                    automatable=True,
                    cost_impact=10.0,
                ),
                RecommendedAction(
                    type=ActionType.SCALE,
                    priority=2,
                    description="Increase memory allocation",
                    estimated_effectiveness=0.8,
                    estimated_duration=timedelta(minutes=5),
                    automatable=True,
                    cost_impact=30.0,
                ),
            ],
            historical_similarity=self.historical_similarity(service, FailureType.RESOURCE, signature),
            signature=signature,
        )

    def detect_latency_degradation(self,
                                   service: str,
                                   prediction: ResourcePrediction,
                                   signature: List[float]) -> Optional[FailurePrediction]:
        latency = prediction.predictions.latency
        if not latency:
            return None
        peak = max(latency)
        slow = sum(1 for value in latency if value > LATENCY_SLOW_MS)
        if not (peak > LATENCY_FAILURE_PEAK or slow > len(latency) * LATENCY_SLOW_SHARE):
            return None

        return FailurePrediction(
            service=service,
            failure_type=FailureType.PERFORMANCE,
            probability=min(0.85, peak / LATENCY_FAILURE_LEVEL),
            confidence=prediction.confidence,
            estimated_time_to_failure=estimate_time_to_failure(latency, LATENCY_FAILURE_LEVEL),
            severity=Severity.CRITICAL if peak > LATENCY_CRITICAL_PEAK else Severity.HIGH,
            root_causes=["Performance degradation", "Increased response time"],
            recommendations=[
                RecommendedAction(
                    type=ActionType.SCALE,
                    priority=1,
                    description="Scale horizontally to distribute load",
                    estimated_effectiveness=0.8,
                    estimated_duration=timedelta(minutes=3),
                    automatable=True,
                    cost_impact=40.0,
                ),
                RecommendedAction(
                    type=ActionType.INVESTIGATE,
                    priority=2,
                    description="Profile application performance",
                    estimated_effectiveness=0.9,
                    estimated_duration=timedelta(hours=1),
                    automatable=False,
                ),
            ],
            historical_similarity=self.historical_similarity(service, FailureType.PERFORMANCE, signature),
            signature=signature,
        )

    def detect_historical_pattern(self,
                                  service: str,
                                  prediction: ResourcePrediction,
                                  signature: List[float]) -> Optional[FailurePrediction]:
        history = self._history.get(service, ())
        if len(history) < MIN_PATTERN_HISTORY:
            return None

        similar = [
            past for past in history
            if pattern_similarity(signature, past.signature) > PATTERN_SIMILARITY_THRESHOLD
        ]
        if not similar:
            return None

        logger.debug("Historical failure pattern matched", service=service, matches=len(similar))
        return FailurePrediction(
            service=service,
            failure_type=FailureType.DEPENDENCY,
            probability=sum(p.probability for p in similar) / len(similar) * 0.8,
            confidence=0.7,
            estimated_time_to_failure=timedelta(minutes=30),
            severity=Severity.MEDIUM,
            root_causes=["Historical pattern similarity detected"],
            recommendations=[
                RecommendedAction(
                    type=ActionType.ALERT,
                    priority=1,
                    description="Monitor closely based on historical patterns",
                    estimated_effectiveness=0.6,
                    estimated_duration=timedelta(0),
                    automatable=True,
                ),
            ],
            historical_similarity=max(pattern_similarity(signature, p.signature) for p in similar),
            signature=signature,
        )
