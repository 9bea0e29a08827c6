"""Wiring and periodic coordination of the optimization components."""

from .metrics_source import MetricsSource, SyntheticMetricsSource, to_resource_metric
from .orchestrator import IntegratedInsight, OptimizationOrchestrator

__all__ = [
    "OptimizationOrchestrator",
    "IntegratedInsight",
    "MetricsSource",
    "SyntheticMetricsSource",
    "to_resource_metric",
]
