"""Resource usage forecasting."""

from .resource_predictor import (
    AnomalyDetection,
    AnomalySeverity,
    AnomalyType,
    MetricForecast,
    PredictorConfig,
    ResourceMetric,
    ResourcePrediction,
    ResourcePredictor,
    SystemLoadForecast,
)

__all__ = [
    "ResourcePredictor",
    "PredictorConfig",
    "ResourceMetric",
    "ResourcePrediction",
    "MetricForecast",
    "SystemLoadForecast",
    "AnomalyDetection",
    "AnomalyType",
    "AnomalySeverity",
]
