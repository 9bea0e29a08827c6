"""Per-service health scoring from a resource forecast."""

from datetime import datetime
from typing import List, Optional, Protocol

from ..prediction.resource_predictor import ResourcePrediction
from .models import HealthComponents, HealthScore, HealthTrend

TREND_DELTA = 5.0
DEFAULT_SECURITY_SCORE = 85.0


class SecurityScorer(Protocol):
    """Supplies the security component of a health score (0-100)."""

    def score(self, service: str) -> float:
        ...


class StaticSecurityScorer:
    """Same score for every service."""

    def __init__(self, value: float = DEFAULT_SECURITY_SCORE):
        self.value = value

    def score(self, service: str) -> float:
        return self.value


def score_trend(overall: float, previous: Optional[HealthScore]) -> HealthTrend:
    if previous is None:
        return HealthTrend.STABLE
    diff = overall - previous.overall
    if diff > TREND_DELTA:
        return HealthTrend.IMPROVING
    if diff < -TREND_DELTA:
        return HealthTrend.DEGRADING
    return HealthTrend.STABLE


class HealthScorer:
    """
    Combines five component scores into an overall 0-100 health score.

    Performance is penalized by CPU and memory above 70% and latency above
    500 ms; reliability is the forecast confidence; availability loses ten
    points per forecast anomaly; scalability loses thirty points each for
    CPU or memory peaks above 80%.
    """

    def __init__(self, security_scorer: Optional[SecurityScorer] = None):
        self.security_scorer = security_scorer or StaticSecurityScorer()

    def components(self, service: str, prediction: ResourcePrediction) -> HealthComponents:
        forecast = prediction.predictions
        max_cpu = forecast.peak("cpu")
        max_memory = forecast.peak("memory")
        max_latency = forecast.peak("latency")

        performance = max(0.0, 100 - max(max_cpu - 70, max_memory - 70, (max_latency - 500) / 10))
        scalability = 100.0 - (30 if max_cpu > 80 else 0) - (30 if max_memory > 80 else 0)

        return HealthComponents(
            performance=min(100.0, performance),
            reliability=prediction.confidence * 100,
            availability=max(0.0, 100.0 - len(prediction.anomalies) * 10),
            scalability=scalability,
            security=self.security_scorer.score(service),
        )

    @staticmethod
    def risk_factors(prediction: ResourcePrediction) -> List[str]:
        forecast = prediction.predictions
        factors = []
        if forecast.peak("cpu") > 80:
            factors.append("High CPU utilization")
        if forecast.peak("memory") > 80:
            factors.append("High memory usage")
        if forecast.peak("latency") > 1000:
            factors.append("High latency")
        if prediction.anomalies:
            factors.append("Anomalies detected")
        return factors

    def score(self,
              service: str,
              prediction: ResourcePrediction,
              previous: Optional[HealthScore],
              timestamp: datetime) -> HealthScore:
        components = self.components(service, prediction)
        overall = components.overall
        return HealthScore(
            service=service,
            overall=overall,
            components=components,
            trend=score_trend(overall, previous),
            risk_factors=self.risk_factors(prediction),
            timestamp=timestamp,
        )
