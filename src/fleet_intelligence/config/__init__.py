"""Configuration for the fleet intelligence layer."""

from .settings import (
    CacheSettings,
    MonitorSettings,
    OrchestratorSettings,
    PredictorSettings,
    ScalerSettings,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "PredictorSettings",
    "CacheSettings",
    "ScalerSettings",
    "MonitorSettings",
    "OrchestratorSettings",
    "get_settings",
]
