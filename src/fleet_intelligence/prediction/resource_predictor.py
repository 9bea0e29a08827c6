"""
Per-service resource usage forecasting.

Keeps a bounded history of resource samples for every service, fits a
lightweight model per metric (trailing trend, exponential smoothing and a
seasonal decomposition) and extrapolates it over a forecast horizon. The
forecast is scanned for upcoming anomalies: CPU spikes, steady memory
growth and sustained latency degradation.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

import structlog

from ..analysis.time_series import Decomposition, TimeSeriesAnalyzer
from ..config.settings import PredictorSettings
from ..core.exceptions import ConfigurationError
from ..core.logging import log_execution_time
from ..core.scheduler import Clock, SystemClock

logger = structlog.get_logger(__name__)

METRICS = ("cpu", "memory", "requests", "latency")

CPU_SPIKE_THRESHOLD = 80.0
CPU_SPIKE_HIGH_THRESHOLD = 95.0
MEMORY_TREND_SLOPE = 0.5
MEMORY_TREND_FLOOR = 80.0
LATENCY_DEGRADED_MS = 1000.0
LATENCY_DEGRADED_SHARE = 0.3
CONFIDENCE_WINDOW = 10


class AnomalyType(Enum):
    """Shape of an upcoming anomaly."""
    SPIKE = "spike"
    DROP = "drop"
    TREND = "trend"
    PATTERN = "pattern"


class AnomalySeverity(Enum):
    """Severity of an upcoming anomaly."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ResourceMetric:
    """One resource sample for one service."""

    timestamp: datetime
    cpu: float
    memory: float
    requests: float
    latency: float
    errors: float = 0.0

    def value(self, metric: str) -> float:
        return float(getattr(self, metric))


@dataclass
class AnomalyDetection:
    """An anomaly expected within a forecast horizon."""

    type: AnomalyType
    metric: str
    severity: AnomalySeverity
    probability: float
    expected_time: datetime
    recommendation: str


@dataclass
class MetricForecast:
    """Per-minute forecast values for the four tracked metrics."""

    cpu: List[float] = field(default_factory=list)
    memory: List[float] = field(default_factory=list)
    requests: List[float] = field(default_factory=list)
    latency: List[float] = field(default_factory=list)

    def series(self, metric: str) -> List[float]:
        return getattr(self, metric)

    def peak(self, metric: str) -> float:
        values = self.series(metric)
        return max(values) if values else 0.0


@dataclass
class ResourcePrediction:
    """Forecast for one service over ``horizon_minutes``."""

    service: str
    predictions: MetricForecast
    confidence: float
    horizon_minutes: int
    anomalies: List[AnomalyDetection] = field(default_factory=list)
    generated_at: Optional[datetime] = None


@dataclass
class SystemLoadForecast:
    """Fleet-wide forecast: summed cpu, memory and requests, averaged latency."""

    total_cpu: List[float]
    total_memory: List[float]
    total_requests: List[float]
    avg_latency: List[float]
    confidence: float
    services: List[str] = field(default_factory=list)


@dataclass
class MetricModel:
    """Fitted components for one metric."""

    trend: List[float]
    smoothed: List[float]
    seasonal: Decomposition


@dataclass
class ServiceModel:
    """Fitted components for every metric of one service."""

    metrics: Dict[str, MetricModel]
    trained_at: datetime
    samples: int


@dataclass
class PredictorConfig:
    """Configuration for the resource predictor."""

    max_history_size: int = 1000
    retrain_every: int = 50
    min_training_samples: int = 50
    min_prediction_samples: int = 10
    seasonal_period: int = 24
    trend_window: int = 10
    smoothing_alpha: float = 0.3

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if self.max_history_size < 1:
            raise ConfigurationError("max_history_size must be at least 1")
        if self.retrain_every < 1 or self.min_training_samples < 1:
            raise ConfigurationError("retrain_every and min_training_samples must be positive")
        if self.min_prediction_samples < 1:
            raise ConfigurationError("min_prediction_samples must be at least 1")
        if self.seasonal_period < 1 or self.trend_window < 1:
            raise ConfigurationError("seasonal_period and trend_window must be positive")
        if not 0 < self.smoothing_alpha <= 1:
            raise ConfigurationError("smoothing_alpha must be in (0, 1]")

    @classmethod
    def from_settings(cls, settings: PredictorSettings) -> "PredictorConfig":
        return cls(**settings.model_dump())


class ResourcePredictor:
    """
    Forecasts resource usage for every service it has samples for.

    Retraining happens automatically on every ``retrain_every``-th sample
    appended for a service. A service that has enough samples to forecast
    but has never been trained gets a bootstrap model on its first
    ``predict_usage`` call.
    """

    def __init__(self, config: Optional[PredictorConfig] = None, clock: Optional[Clock] = None):
        self.config = config or PredictorConfig()
        self.config.validate()
        self.clock = clock or SystemClock()

        self._history: Dict[str, Deque[ResourceMetric]] = {}
        self._append_counts: Dict[str, int] = {}
        self._models: Dict[str, ServiceModel] = {}

        logger.info("ResourcePredictor initialized",
                    max_history=self.config.max_history_size,
                    retrain_every=self.config.retrain_every)

    def add_historical_data(self, service: str, metric: ResourceMetric) -> None:
        """Append a sample; retrain on every ``retrain_every``-th append."""
        history = self._history.get(service)
        if history is None:
            history = deque(maxlen=self.config.max_history_size)
            self._history[service] = history
        history.append(metric)

        count = self._append_counts.get(service, 0) + 1
        self._append_counts[service] = count
        if count % self.config.retrain_every == 0:
            self.train_model(service)

    @log_execution_time("predictor.train_model")
    def train_model(self, service: str, min_samples: Optional[int] = None) -> bool:
        """Fit the per-metric model for a service. Returns False when skipped."""
        required = self.config.min_training_samples if min_samples is None else min_samples
        history = self._history.get(service)
        samples = len(history) if history else 0

        if samples < required:
            logger.warning("Insufficient data for training",
                           service=service,
                           samples=samples,
                           required=required)
            return False

        start = self.clock.now()
        try:
            metrics = {}
            for name in METRICS:
                values = [m.value(name) for m in history]
                metrics[name] = MetricModel(
                    trend=TimeSeriesAnalyzer.moving_average(values, self.config.trend_window),
                    smoothed=TimeSeriesAnalyzer.exponential_smoothing(values, self.config.smoothing_alpha),
                    seasonal=TimeSeriesAnalyzer.decompose(values, self.config.seasonal_period),
                )
            self._models[service] = ServiceModel(metrics=metrics, trained_at=start, samples=samples)
        except Exception as e:
            logger.error("Model training failed", service=service, error=str(e))
            return False

        logger.info("Model trained", service=service, samples=samples)
        return True

    def predict_usage(self, service: str, horizon_minutes: int = 60) -> Optional[ResourcePrediction]:
        """Forecast a service over the horizon, or None when there is too little data."""
        history = self._history.get(service)
        if not history or len(history) < self.config.min_prediction_samples:
            logger.warning("Cannot predict: insufficient data",
                           service=service,
                           samples=len(history) if history else 0)
            return None

        model = self._models.get(service)
        if model is None:
            if not self.train_model(service, min_samples=self.config.min_prediction_samples):
                return None
            model = self._models[service]

        try:
            forecast = self._generate_predictions(model, horizon_minutes)
            return ResourcePrediction(
                service=service,
                predictions=forecast,
                confidence=self.calculate_confidence(service),
                horizon_minutes=horizon_minutes,
                anomalies=self._detect_upcoming_anomalies(forecast),
                generated_at=self.clock.now(),
            )
        except Exception as e:
            logger.error("Prediction failed", service=service, error=str(e))
            return None

    def _generate_predictions(self, model: ServiceModel, horizon: int) -> MetricForecast:
        forecast = MetricForecast()
        period = self.config.seasonal_period
        for name in METRICS:
            fitted = model.metrics[name]
            seasonal = fitted.seasonal.seasonal
            series = forecast.series(name)
            if not fitted.smoothed or not seasonal:
                series.extend([0.0] * horizon)
                continue
            last = fitted.smoothed[-1]
            cycle = min(period, len(seasonal))
            for i in range(horizon):
                series.append(max(0.0, last + seasonal[i % cycle]))
        return forecast

    def _detect_upcoming_anomalies(self, forecast: MetricForecast) -> List[AnomalyDetection]:
        anomalies: List[AnomalyDetection] = []
        now = self.clock.now()

        spikes = [(i, v) for i, v in enumerate(forecast.cpu) if v > CPU_SPIKE_THRESHOLD]
        if spikes:
            first_index, first_value = spikes[0]
            anomalies.append(AnomalyDetection(
                type=AnomalyType.SPIKE,
                metric="cpu",
                severity=AnomalySeverity.HIGH if first_value >= CPU_SPIKE_HIGH_THRESHOLD else AnomalySeverity.MEDIUM,
                probability=0.85,
                expected_time=now + timedelta(minutes=first_index),
                recommendation="Consider auto-scaling or load balancing",
            ))

        memory_slope = TimeSeriesAnalyzer.calculate_trend(forecast.memory)
        if memory_slope > MEMORY_TREND_SLOPE and forecast.peak("memory") > MEMORY_TREND_FLOOR:
            anomalies.append(AnomalyDetection(
                type=AnomalyType.TREND,
                metric="memory",
                severity=AnomalySeverity.MEDIUM,
                probability=0.75,
                expected_time=now + timedelta(minutes=30),
                recommendation="Monitor for memory leaks and consider restart",
            ))

        slow = [v for v in forecast.latency if v > LATENCY_DEGRADED_MS]
        if forecast.latency and len(slow) > len(forecast.latency) * LATENCY_DEGRADED_SHARE:
            anomalies.append(AnomalyDetection(
                type=AnomalyType.PATTERN,
                metric="latency",
                severity=AnomalySeverity.HIGH,
                probability=0.9,
                expected_time=now + timedelta(minutes=15),
                recommendation="Immediate attention required - performance degradation",
            ))

        return anomalies

    def calculate_confidence(self, service: str) -> float:
        """Confidence from the variance of the last 10 raw CPU samples."""
        history = self._history.get(service)
        if not history or len(history) < CONFIDENCE_WINDOW:
            return 0.5
        recent = [m.cpu for m in list(history)[-CONFIDENCE_WINDOW:]]
        variance = TimeSeriesAnalyzer.variance(recent)
        return max(0.4, min(0.95, 1 - variance / 100))

    def predict_all_services(self, horizon_minutes: int = 60) -> Dict[str, ResourcePrediction]:
        predictions = {}
        for service in list(self._history):
            prediction = self.predict_usage(service, horizon_minutes)
            if prediction is not None:
                predictions[service] = prediction
        return predictions

    def predict_system_load(self, horizon_minutes: int = 60) -> SystemLoadForecast:
        """Aggregate every available service forecast into a fleet forecast."""
        predictions = self.predict_all_services(horizon_minutes)
        load = SystemLoadForecast(
            total_cpu=[0.0] * horizon_minutes,
            total_memory=[0.0] * horizon_minutes,
            total_requests=[0.0] * horizon_minutes,
            avg_latency=[0.0] * horizon_minutes,
            confidence=0.0,
            services=sorted(predictions),
        )
        if not predictions:
            return load

        for prediction in predictions.values():
            forecast = prediction.predictions
            for i in range(min(horizon_minutes, len(forecast.cpu))):
                load.total_cpu[i] += forecast.cpu[i]
                load.total_memory[i] += forecast.memory[i]
                load.total_requests[i] += forecast.requests[i]
                load.avg_latency[i] += forecast.latency[i]

        count = len(predictions)
        load.avg_latency = [v / count for v in load.avg_latency]
        load.confidence = sum(p.confidence for p in predictions.values()) / count
        return load

    def services(self) -> List[str]:
        return list(self._history)

    def get_history(self, service: str) -> List[ResourceMetric]:
        return list(self._history.get(service, ()))

    def latest_metric(self, service: str) -> Optional[ResourceMetric]:
        history = self._history.get(service)
        return history[-1] if history else None

    def has_model(self, service: str) -> bool:
        return service in self._models

    def current_system_load(self) -> float:
        """Mean CPU of every service's latest sample (0 with no data)."""
        latest = [h[-1].cpu for h in self._history.values() if h]
        return sum(latest) / len(latest) if latest else 0.0

    def mean_confidence(self) -> Optional[float]:
        """Mean confidence across services with enough samples."""
        scores = [self.calculate_confidence(s) for s, h in self._history.items()
                  if len(h) >= CONFIDENCE_WINDOW]
        return sum(scores) / len(scores) if scores else None

    def export_data(self, service: Optional[str] = None) -> Dict[str, Any]:
        """Plain-dict snapshot of history and fitted model, for debugging."""
        def snapshot(name: str) -> Dict[str, Any]:
            model = self._models.get(name)
            return {
                "historical": [asdict(m) for m in self._history.get(name, ())],
                "model": asdict(model) if model else None,
            }

        if service is not None:
            return snapshot(service)
        return {name: snapshot(name) for name in self._history}
