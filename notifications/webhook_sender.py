"""Generic HTTP webhook transport."""
import logging

from utils.http_client import HTTPClient

logger = logging.getLogger("pulsewatch.notifications.webhook")

DEFAULT_TIMEOUT = 10


class WebhookSender:
    """POSTs the alert.triggered JSON document to a configured URL."""

    def __init__(self, client=None, timeout=DEFAULT_TIMEOUT):
        self.client = client or HTTPClient(timeout=timeout, channel="webhook")

    def send(self, context, url, headers=None, timeout=None):
        payload = context.to_webhook_payload()
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        self.client.post_json(url, payload, headers=request_headers, timeout=timeout)
        logger.info(f"Webhook notification sent for alert: {context.alert.name} to {url}")
