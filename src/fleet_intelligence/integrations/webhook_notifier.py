"""
Webhook alert delivery.

Posts predictive alerts as JSON to per-channel webhook URLs (a Slack
incoming webhook, an e-mail relay, ...). Delivery is best effort: the
monitor logs a NotificationError and moves on to the next channel.
"""

from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import structlog

from ..core.exceptions import NotificationError
from ..monitoring.models import PredictiveAlert

logger = structlog.get_logger(__name__)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "total_seconds"):
        return value.total_seconds()
    return value


def alert_payload(alert: PredictiveAlert, channel: str) -> Dict[str, Any]:
    """JSON body for one alert."""
    metadata = asdict(alert.metadata) if is_dataclass(alert.metadata) else {}
    return {
        "channel": channel,
        "text": f"[{alert.level.value.upper()}] {alert.title}: {alert.message}",
        "alert": {
            "id": alert.id,
            "service": alert.service,
            "type": alert.type.value,
            "level": alert.level.value,
            "title": alert.title,
            "message": alert.message,
            "timestamp": alert.timestamp.isoformat(),
            "metadata": _plain(metadata),
        },
    }


class WebhookAlertNotifier:
    """AlertNotifier that posts to webhook URLs with httpx."""

    def __init__(self,
                 webhooks: Dict[str, str],
                 timeout_seconds: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhooks = {channel: url for channel, url in webhooks.items() if url}
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
            logger.info("Webhook notifier initialized", channels=sorted(self.webhooks))

    async def shutdown(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def notify(self, alert: PredictiveAlert, channel: str) -> None:
        url = self.webhooks.get(channel)
        if url is None:
            logger.debug("No webhook configured for channel", channel=channel, alert_id=alert.id)
            return

        if self.client is None:
            await self.initialize()

        try:
            response = await self.client.post(url, json=alert_payload(alert, channel))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(channel, f"webhook returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise NotificationError(channel, f"webhook request failed: {e}") from e

        logger.info("Alert posted to webhook", channel=channel, alert_id=alert.id, status=response.status_code)
