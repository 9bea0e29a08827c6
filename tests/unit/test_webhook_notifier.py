"""
Unit tests for webhook alert delivery.
"""

import json
from datetime import datetime

import httpx
import pytest

from fleet_intelligence.core.exceptions import NotificationError
from fleet_intelligence.integrations import WebhookAlertNotifier, alert_payload
from fleet_intelligence.monitoring import (
    AlertLevel,
    AlertType,
    AnomalyAlertMetadata,
    PredictiveAlert,
)
from fleet_intelligence.prediction.resource_predictor import AnomalyType


@pytest.fixture
def alert():
    return PredictiveAlert(
        id="anomaly_pattern_abc123",
        service="github-mcp",
        type=AlertType.ANOMALY,
        level=AlertLevel.ERROR,
        title="Anomaly detected: pattern",
        message="Immediate attention required - performance degradation",
        timestamp=datetime(2024, 1, 1, 12, 0, 0),
        metadata=AnomalyAlertMetadata(metric="latency", probability=0.9, anomaly_type=AnomalyType.PATTERN),
    )


def recording_transport(status_code=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.MockTransport(handler), requests


class TestAlertPayload:
    """Test the JSON body sent to webhooks."""

    def test_payload_is_plain_json(self, alert):
        payload = alert_payload(alert, "slack")

        assert payload["channel"] == "slack"
        assert payload["text"].startswith("[ERROR] Anomaly detected: pattern")
        assert payload["alert"]["timestamp"] == "2024-01-01T12:00:00"
        assert payload["alert"]["metadata"] == {
            "metric": "latency",
            "probability": 0.9,
            "anomaly_type": "pattern",
        }
        json.dumps(payload)


class TestWebhookAlertNotifier:
    """Test posting alerts with httpx."""

    @pytest.mark.asyncio
    async def test_posts_to_configured_channel(self, alert):
        transport, requests = recording_transport()
        notifier = WebhookAlertNotifier({"slack": "https://hooks.example.com/fleet"}, transport=transport)

        await notifier.notify(alert, "slack")
        await notifier.shutdown()

        assert len(requests) == 1
        assert str(requests[0].url) == "https://hooks.example.com/fleet"
        body = json.loads(requests[0].content)
        assert body["alert"]["service"] == "github-mcp"

    @pytest.mark.asyncio
    async def test_unconfigured_channel_is_skipped(self, alert):
        transport, requests = recording_transport()
        notifier = WebhookAlertNotifier({"slack": "https://hooks.example.com/fleet", "email": ""},
                                        transport=transport)

        await notifier.notify(alert, "email")

        assert requests == []
        assert notifier.client is None

    @pytest.mark.asyncio
    async def test_error_status_raises_notification_error(self, alert):
        transport, _ = recording_transport(status_code=500)
        notifier = WebhookAlertNotifier({"slack": "https://hooks.example.com/fleet"}, transport=transport)

        with pytest.raises(NotificationError) as exc_info:
            await notifier.notify(alert, "slack")
        await notifier.shutdown()

        assert exc_info.value.channel == "slack"
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_failure_raises_notification_error(self, alert):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = WebhookAlertNotifier({"slack": "https://hooks.example.com/fleet"},
                                        transport=httpx.MockTransport(handler))

        with pytest.raises(NotificationError):
            await notifier.notify(alert, "slack")
        await notifier.shutdown()
