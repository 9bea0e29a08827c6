"""
Data model for scaling decisions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from ..config.settings import OrchestratorSettings, ScalerSettings
from ..core.exceptions import ConfigurationError


class ScalingPolicy(Enum):
    """How the auto scaler decides."""
    REACTIVE = "reactive"
    PREDICTIVE = "predictive"
    SCHEDULED = "scheduled"
    COST_AWARE = "cost-aware"
    HYBRID = "hybrid"


class ScalingDirection(Enum):
    """Direction of a scaling action."""
    SCALE_UP = "scale-up"
    SCALE_DOWN = "scale-down"
    MAINTAIN = "maintain"


class Urgency(Enum):
    """How soon an action should run."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return {"low": 1, "medium": 2, "high": 3, "critical": 4}[self.value]


class ScalingResult(Enum):
    """Outcome of an executed action."""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class PerformanceTargets:
    """Utilization ceilings a service should stay under."""

    max_cpu_utilization: float = 70.0
    max_memory_utilization: float = 80.0
    max_latency_ms: float = 1000.0
    min_throughput: float = 10.0


@dataclass
class ScalingConstraints:
    """Per-service replica bounds, step limits and cooldown."""

    min_replicas: int = 1
    max_replicas: int = 10
    max_scale_up_step: int = 3
    max_scale_down_step: int = 2
    cooldown_period: timedelta = timedelta(minutes=5)
    performance_targets: PerformanceTargets = field(default_factory=PerformanceTargets)
    # Monthly cost ceiling for one non-critical cost-aware action
    cost_budget: Optional[float] = None

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if self.min_replicas < 0:
            raise ConfigurationError("min_replicas must not be negative")
        if self.max_replicas < max(1, self.min_replicas):
            raise ConfigurationError("max_replicas must be at least min_replicas and 1")
        if self.max_scale_up_step < 1 or self.max_scale_down_step < 1:
            raise ConfigurationError("scale steps must be at least 1")
        if self.cooldown_period < timedelta(0):
            raise ConfigurationError("cooldown_period must not be negative")
        if self.cost_budget is not None and self.cost_budget < 0:
            raise ConfigurationError("cost_budget must not be negative")
        targets = self.performance_targets
        if min(targets.max_cpu_utilization, targets.max_memory_utilization, targets.max_latency_ms) <= 0:
            raise ConfigurationError("performance targets must be positive")

    def clamp(self, replicas: int) -> int:
        return min(self.max_replicas, max(self.min_replicas, replicas))

    @classmethod
    def from_settings(cls, settings: OrchestratorSettings) -> "ScalingConstraints":
        return cls(
            min_replicas=settings.min_replicas,
            max_replicas=settings.max_replicas,
            max_scale_up_step=settings.max_scale_up_step,
            max_scale_down_step=settings.max_scale_down_step,
            cooldown_period=timedelta(minutes=settings.cooldown_minutes),
            performance_targets=PerformanceTargets(
                max_cpu_utilization=settings.max_cpu_utilization,
                max_memory_utilization=settings.max_memory_utilization,
                max_latency_ms=settings.max_latency_ms,
                min_throughput=settings.min_throughput,
            ),
        )


@dataclass(frozen=True)
class ServiceMetrics:
    """Current state of one service as seen by the scaler."""

    service: str
    timestamp: datetime
    replicas: int
    cpu: float
    memory: float
    requests: float
    latency: float
    errors: float = 0.0
    cost: float = 0.0


@dataclass
class ScaleAction:
    """A proposed change to a service's replica count."""

    service: str
    action: ScalingDirection
    current_replicas: int
    target_replicas: int
    reason: str
    confidence: float
    estimated_cost: float
    estimated_benefit: float
    urgency: Urgency
    policy: ScalingPolicy
    scheduled_time: Optional[datetime] = None

    @property
    def replica_delta(self) -> int:
        return self.target_replicas - self.current_replicas

    @property
    def cost_efficiency(self) -> float:
        """Benefit per unit of cost (0 when the action costs nothing)."""
        if self.estimated_cost <= 0:
            return 0.0
        return self.estimated_benefit / self.estimated_cost

    @property
    def priority_score(self) -> float:
        return self.cost_efficiency * self.urgency.weight


@dataclass
class ScalingEvent:
    """Audit record of an action submitted to the infrastructure controller."""

    id: str
    service: str
    timestamp: datetime
    action: ScaleAction
    result: ScalingResult
    duration_seconds: float
    cost_impact: float
    before_metrics: Optional[ServiceMetrics] = None
    error: Optional[str] = None


@dataclass
class ScalingPerformance:
    """Aggregate view of the scaling event log."""

    total_scaling_events: int
    success_rate: float
    avg_scaling_duration: float
    cost_savings: float
    performance_improvement: float
    top_scaled_services: list = field(default_factory=list)


@dataclass
class AutoScalerConfig:
    """Configuration for the auto scaler."""

    enabled: bool = True
    policy: ScalingPolicy = ScalingPolicy.HYBRID
    evaluation_interval_seconds: float = 60.0
    dry_run: bool = False
    cost_optimization: bool = True
    predictive_horizon_minutes: int = 30
    min_cost_efficiency: float = 2.0
    predictive_confidence_threshold: float = 0.8
    scale_ahead: timedelta = timedelta(minutes=5)

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if not isinstance(self.policy, ScalingPolicy):
            raise ConfigurationError(f"Unknown scaling policy: {self.policy!r}")
        if self.evaluation_interval_seconds <= 0:
            raise ConfigurationError("evaluation_interval_seconds must be positive")
        if self.predictive_horizon_minutes < 1:
            raise ConfigurationError("predictive_horizon_minutes must be at least 1")
        if self.min_cost_efficiency < 0:
            raise ConfigurationError("min_cost_efficiency must not be negative")
        if not 0 <= self.predictive_confidence_threshold <= 1:
            raise ConfigurationError("predictive_confidence_threshold must be in [0, 1]")

    @classmethod
    def from_settings(cls, settings: ScalerSettings) -> "AutoScalerConfig":
        return cls(
            enabled=settings.enabled,
            policy=ScalingPolicy(settings.policy),
            evaluation_interval_seconds=settings.evaluation_interval_seconds,
            dry_run=settings.dry_run,
            cost_optimization=settings.cost_optimization,
            predictive_horizon_minutes=settings.predictive_horizon_minutes,
        )
