"""
Data model for predictive monitoring: failure predictions, health scores,
alerts, insights and the remediation audit trail.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Union

from ..config.settings import MonitorSettings
from ..core.exceptions import ConfigurationError
from ..prediction.resource_predictor import AnomalyType


class FailureType(Enum):
    """Category of a predicted failure."""
    CRASH = "crash"
    PERFORMANCE = "performance"
    RESOURCE = "resource"
    NETWORK = "network"
    DEPENDENCY = "dependency"


class Severity(Enum):
    """Severity of a predicted failure."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActionType(Enum):
    """Kind of remediation step."""
    RESTART = "restart"
    SCALE = "scale"
    CONFIG = "config"
    ALERT = "alert"
    INVESTIGATE = "investigate"


class HealthTrend(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class AlertType(Enum):
    PREDICTION = "prediction"
    ANOMALY = "anomaly"
    TREND = "trend"
    THRESHOLD = "threshold"


class AlertLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @classmethod
    def from_severity(cls, severity: str) -> "AlertLevel":
        """Map a failure or anomaly severity name onto an alert level."""
        return {
            "low": cls.INFO,
            "medium": cls.WARNING,
            "high": cls.ERROR,
            "critical": cls.CRITICAL,
        }.get(severity, cls.INFO)


class InsightType(Enum):
    OPTIMIZATION = "optimization"
    RISK = "risk"
    OPPORTUNITY = "opportunity"
    TREND = "trend"


class Impact(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class RecommendedAction:
    """A concrete remediation step attached to a failure prediction."""

    type: ActionType
    priority: int
    description: str
    estimated_effectiveness: float
    estimated_duration: timedelta
    automatable: bool
    cost_impact: float = 0.0


@dataclass
class FailurePrediction:
    """A failure expected for one service within the forecast horizon."""

    service: str
    failure_type: FailureType
    probability: float
    confidence: float
    estimated_time_to_failure: Optional[timedelta]
    severity: Severity
    root_causes: List[str] = field(default_factory=list)
    recommendations: List[RecommendedAction] = field(default_factory=list)
    historical_similarity: float = 0.0
    signature: List[float] = field(default_factory=list)

    @property
    def automatable_actions(self) -> List[RecommendedAction]:
        return [r for r in self.recommendations if r.automatable]


@dataclass
class HealthComponents:
    """Component scores on a 0-100 scale."""

    performance: float
    reliability: float
    availability: float
    scalability: float
    security: float

    @property
    def overall(self) -> float:
        return (self.performance + self.reliability + self.availability
                + self.scalability + self.security) / 5


@dataclass
class HealthScore:
    """Health of one service at one point in time."""

    service: str
    overall: float
    components: HealthComponents
    trend: HealthTrend
    risk_factors: List[str]
    timestamp: datetime


@dataclass(frozen=True)
class FailureAlertMetadata:
    """Details carried by a failure prediction alert."""

    failure_type: FailureType
    root_causes: List[str]
    recommendations: List[RecommendedAction]


@dataclass(frozen=True)
class AnomalyAlertMetadata:
    """Details carried by an anomaly alert."""

    metric: str
    probability: float
    anomaly_type: AnomalyType


AlertMetadata = Union[FailureAlertMetadata, AnomalyAlertMetadata]


@dataclass
class PredictiveAlert:
    """An alert raised by the predictive monitor."""

    id: str
    service: str
    type: AlertType
    level: AlertLevel
    title: str
    message: str
    timestamp: datetime
    metadata: AlertMetadata
    acknowledged: bool = False


@dataclass
class SystemInsight:
    """A fleet-level observation worth surfacing on the dashboard."""

    id: str
    type: InsightType
    title: str
    description: str
    impact: Impact
    confidence: float
    actionable: bool
    estimated_value: float
    implementation_effort: Impact
    timestamp: datetime


@dataclass
class RemediationRecord:
    """Audit entry for one automated remediation attempt."""

    service: str
    timestamp: datetime
    action: RecommendedAction
    result: str
    error: Optional[str] = None


@dataclass
class PredictiveMonitorConfig:
    """Configuration for the predictive monitor."""

    enabled: bool = True
    monitoring_interval_seconds: float = 30.0
    prediction_horizon_minutes: int = 60
    anomaly_threshold: float = 0.7
    failure_prediction_threshold: float = 0.8
    auto_remediation: bool = False
    alert_channels: List[str] = field(default_factory=lambda: ["email", "slack"])
    min_prediction_confidence: float = 0.5
    remediation_severity: Severity = Severity.CRITICAL
    remediation_probability: float = 0.9

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if self.monitoring_interval_seconds <= 0:
            raise ConfigurationError("monitoring_interval_seconds must be positive")
        if self.prediction_horizon_minutes < 1:
            raise ConfigurationError("prediction_horizon_minutes must be at least 1")
        for name in ("anomaly_threshold", "failure_prediction_threshold",
                     "min_prediction_confidence", "remediation_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")

    @classmethod
    def from_settings(cls, settings: MonitorSettings) -> "PredictiveMonitorConfig":
        return cls(
            enabled=settings.enabled,
            monitoring_interval_seconds=settings.monitoring_interval_seconds,
            prediction_horizon_minutes=settings.prediction_horizon_minutes,
            anomaly_threshold=settings.anomaly_threshold,
            failure_prediction_threshold=settings.failure_prediction_threshold,
            auto_remediation=settings.auto_remediation,
            alert_channels=list(settings.alert_channels),
        )
