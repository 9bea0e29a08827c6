"""
Core exception classes for the fleet intelligence layer.

Expected absence (no forecast, no metrics, no constraints) is not an error
and never raises; these exceptions cover invalid configuration and failed
calls into collaborators.
"""


class FleetIntelligenceError(Exception):
    """Base exception for all fleet intelligence errors."""
    pass


class ConfigurationError(FleetIntelligenceError):
    """Raised when a component configuration is invalid."""
    pass


class SchedulerError(FleetIntelligenceError):
    """Raised when a periodic task cannot be registered."""
    pass


class ScalingExecutionError(FleetIntelligenceError):
    """Raised when the infrastructure controller rejects a scale request."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class RemediationError(FleetIntelligenceError):
    """Raised when an automated remediation action fails."""

    def __init__(self, service: str, action: str, message: str):
        super().__init__(f"{service}/{action}: {message}")
        self.service = service
        self.action = action


class NotificationError(FleetIntelligenceError):
    """Raised when an alert cannot be delivered to a channel."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel
