"""Alert notification channels.

Every channel implements ``send(context, config)``: it returns on success
and raises TransportError on failure. ``config`` is the resolved channel
config variant for this rule (see models.notifications).
"""
import json
import logging
import threading
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.markup import escape

from utils.formatters import format_value, severity_style
from utils.http_client import TransportError

logger = logging.getLogger("pulsewatch.alerts.channels")


@runtime_checkable
class NotificationChannel(Protocol):
    def send(self, context, config) -> None: ...


class EmailChannel:
    """Email via SMTP to the rule's resolved recipients."""

    def __init__(self, sender):
        self.sender = sender

    def send(self, context, config):
        self.sender.send_alert(context, list(config.recipients))


class SlackChannel:
    """Slack-style chat webhook."""

    def __init__(self, notifier):
        self.notifier = notifier

    def send(self, context, config):
        self.notifier.send(
            context,
            config.webhook_url,
            channel=config.channel,
            username=config.username,
            icon_emoji=config.icon_emoji,
        )


class WebhookChannel:
    """Generic JSON webhook."""

    def __init__(self, sender):
        self.sender = sender

    def send(self, context, config):
        self.sender.send(context, config.url, headers=config.headers,
                         timeout=config.timeout_seconds)


class ConsoleChannel:
    """Print alerts to terminal with rich formatting."""

    def __init__(self, console=None):
        self.console = console or Console()

    def send(self, context, config=None):
        alert = context.alert
        sev = alert.severity.value
        style = severity_style(sev)
        self.console.print(
            f"[{style}]\\[{sev.upper()}][/] {escape(alert.name)}: "
            f"{alert.metric_type} = {format_value(context.current_value)} "
            f"({alert.condition.describe()} {format_value(context.threshold)})"
        )


class FileChannel:
    """Append alerts to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = log_path
        self._lock = threading.Lock()

    def send(self, context, config=None):
        path = self.log_path
        if config is not None and getattr(config, "options", None):
            path = config.options.get("log_path", path)

        entry = context.to_webhook_payload()
        try:
            with self._lock, open(path, "a") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            raise TransportError(f"Failed to write alert to {path}: {e}", channel="file") from e
