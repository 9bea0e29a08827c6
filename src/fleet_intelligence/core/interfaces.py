"""
Collaborator seams.

The optimization layer never touches real infrastructure or delivery
channels directly; it talks to these protocols. The logging implementations
are the defaults when nothing else is wired.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Protocol

import structlog

from .exceptions import ScalingExecutionError

if TYPE_CHECKING:
    from ..monitoring.models import PredictiveAlert

logger = structlog.get_logger(__name__)


class InfrastructureController(Protocol):
    """Applies changes to running services."""

    async def scale(self, service: str, replicas: int) -> None:
        ...

    async def restart(self, service: str) -> None:
        ...

    async def update_config(self, service: str, changes: Dict[str, Any]) -> None:
        ...


class AlertNotifier(Protocol):
    """Delivers an alert to one channel."""

    async def notify(self, alert: "PredictiveAlert", channel: str) -> None:
        ...


class LoggingInfrastructureController:
    """Controller that only records what it was asked to do."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.replicas: Dict[str, int] = {}

    async def scale(self, service: str, replicas: int) -> None:
        if replicas < 0:
            raise ScalingExecutionError(service, f"replica count must not be negative, got {replicas}")
        self.calls.append({"op": "scale", "service": service, "replicas": replicas})
        self.replicas[service] = replicas
        logger.info("Scale requested", service=service, replicas=replicas)

    async def restart(self, service: str) -> None:
        self.calls.append({"op": "restart", "service": service})
        logger.info("Restart requested", service=service)

    async def update_config(self, service: str, changes: Dict[str, Any]) -> None:
        self.calls.append({"op": "update_config", "service": service, "changes": dict(changes)})
        logger.info("Config update requested", service=service, keys=sorted(changes))


class LoggingAlertNotifier:
    """Notifier that writes alerts to the log."""

    def __init__(self) -> None:
        self.delivered: List[Dict[str, Any]] = []

    async def notify(self, alert: "PredictiveAlert", channel: str) -> None:
        self.delivered.append({"alert_id": alert.id, "channel": channel})
        logger.info("Alert delivered",
                    channel=channel,
                    alert_id=alert.id,
                    service=alert.service,
                    alert_level=alert.level.value,
                    title=alert.title)
