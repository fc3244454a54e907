"""Slack incoming-webhook transport.

Uses raw HTTP POST via requests; no Slack SDK needed.
"""
import logging

from utils.formatters import format_value, severity_color, severity_emoji
from utils.http_client import HTTPClient

logger = logging.getLogger("pulsewatch.notifications.slack")


class SlackNotifier:
    """Thin wrapper around a Slack incoming webhook."""

    def __init__(self, client=None, timeout=10):
        self.client = client or HTTPClient(timeout=timeout, channel="slack")

    def send(self, context, webhook_url, channel=None, username="Pulsewatch",
             icon_emoji=":warning:"):
        payload = self.build_payload(context, channel, username, icon_emoji)
        self.client.post_json(webhook_url, payload)
        logger.info(f"Slack notification sent for alert: {context.alert.name}")

    # ── formatters ───────────────────────────────────

    def build_payload(self, context, channel=None, username="Pulsewatch",
                      icon_emoji=":warning:") -> dict:
        alert = context.alert
        sev = alert.severity.value

        payload = {
            "username": username,
            "icon_emoji": icon_emoji,
            "attachments": [
                {
                    "color": severity_color(sev),
                    "title": f"{severity_emoji(sev)} Alert: {alert.name}",
                    "text": alert.description or "",
                    "fields": [
                        {"title": "Severity", "value": sev.upper(), "short": True},
                        {"title": "Project", "value": context.project_name or "N/A", "short": True},
                        {"title": "Metric Type", "value": alert.metric_type, "short": True},
                        {"title": "Current Value", "value": format_value(context.current_value), "short": True},
                        {"title": "Threshold", "value": format_value(context.threshold), "short": True},
                        {"title": "Condition", "value": alert.condition.describe(), "short": True},
                    ],
                    "footer": "Pulsewatch",
                    "ts": int(context.timestamp.timestamp()),
                }
            ],
        }
        if channel:
            payload["channel"] = channel
        return payload
