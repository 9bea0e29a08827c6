"""
Auto-scaling for MCP services.

Reactive, predictive, scheduled, cost-aware and hybrid policies with
per-service constraints, cooldowns and an audit log of executed actions.
"""

from .auto_scaler import AutoScaler
from .cost_model import CostModel, FlatRateCostModel
from .models import (
    AutoScalerConfig,
    PerformanceTargets,
    ScaleAction,
    ScalingConstraints,
    ScalingDirection,
    ScalingEvent,
    ScalingPerformance,
    ScalingPolicy,
    ScalingResult,
    ServiceMetrics,
    Urgency,
)

__all__ = [
    "AutoScaler",
    "AutoScalerConfig",
    "CostModel",
    "FlatRateCostModel",
    "PerformanceTargets",
    "ScaleAction",
    "ScalingConstraints",
    "ScalingDirection",
    "ScalingEvent",
    "ScalingPerformance",
    "ScalingPolicy",
    "ScalingResult",
    "ServiceMetrics",
    "Urgency",
]
