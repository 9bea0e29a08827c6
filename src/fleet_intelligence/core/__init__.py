"""Core infrastructure: logging, errors, clock and scheduling, collaborator seams."""

from .exceptions import (
    ConfigurationError,
    FleetIntelligenceError,
    NotificationError,
    RemediationError,
    ScalingExecutionError,
    SchedulerError,
)
from .interfaces import (
    AlertNotifier,
    InfrastructureController,
    LoggingAlertNotifier,
    LoggingInfrastructureController,
)
from .scheduler import (
    AsyncioScheduler,
    Clock,
    IntervalTask,
    ManualClock,
    ManualScheduler,
    Scheduler,
    SystemClock,
)

__all__ = [
    "FleetIntelligenceError",
    "ConfigurationError",
    "SchedulerError",
    "ScalingExecutionError",
    "RemediationError",
    "NotificationError",
    "InfrastructureController",
    "AlertNotifier",
    "LoggingInfrastructureController",
    "LoggingAlertNotifier",
    "Clock",
    "SystemClock",
    "ManualClock",
    "IntervalTask",
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
]
