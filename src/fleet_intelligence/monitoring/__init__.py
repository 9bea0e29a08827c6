"""
Predictive monitoring: failure prediction, health scoring, alerting,
insights, auto-remediation and Prometheus export.
"""

from .failure_detectors import FailureDetector, estimate_time_to_failure
from .health import HealthScorer, SecurityScorer, StaticSecurityScorer
from .metrics_exporter import FleetMetricsExporter
from .models import (
    ActionType,
    AlertLevel,
    AlertType,
    AnomalyAlertMetadata,
    FailureAlertMetadata,
    FailurePrediction,
    FailureType,
    HealthComponents,
    HealthScore,
    HealthTrend,
    Impact,
    InsightType,
    PredictiveAlert,
    PredictiveMonitorConfig,
    RecommendedAction,
    RemediationRecord,
    Severity,
    SystemInsight,
)
from .predictive_monitor import PredictiveMonitor

__all__ = [
    "PredictiveMonitor",
    "PredictiveMonitorConfig",
    "FailureDetector",
    "estimate_time_to_failure",
    "HealthScorer",
    "SecurityScorer",
    "StaticSecurityScorer",
    "FleetMetricsExporter",
    "ActionType",
    "AlertLevel",
    "AlertType",
    "AnomalyAlertMetadata",
    "FailureAlertMetadata",
    "FailurePrediction",
    "FailureType",
    "HealthComponents",
    "HealthScore",
    "HealthTrend",
    "Impact",
    "InsightType",
    "PredictiveAlert",
    "RecommendedAction",
    "RemediationRecord",
    "Severity",
    "SystemInsight",
]
