"""
MCP Fleet Intelligence.

The optimization layer of an MCP server fleet dashboard: resource
forecasting, adaptive caching, multi-policy auto-scaling and predictive
monitoring, coordinated by a single orchestrator.
"""

__version__ = "0.1.0"
__author__ = "MCP Fleet Intelligence Team"

from fleet_intelligence.core.exceptions import FleetIntelligenceError
from fleet_intelligence.orchestration.orchestrator import OptimizationOrchestrator

__all__ = [
    "__version__",
    "__author__",
    "FleetIntelligenceError",
    "OptimizationOrchestrator",
]
