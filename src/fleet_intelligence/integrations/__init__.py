"""External delivery channels."""

from .webhook_notifier import WebhookAlertNotifier, alert_payload

__all__ = ["WebhookAlertNotifier", "alert_payload"]
