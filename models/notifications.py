"""Notification context, per-channel config variants, and dispatch results."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.alerts import Alert, ValidationError
from models.enums import ChannelKind

SOURCE_NAME = "pulsewatch"
PAYLOAD_VERSION = "1.0.0"


@dataclass(frozen=True)
class NotificationContext:
    """Everything a channel needs to describe one firing episode."""
    alert: Alert
    current_value: float
    threshold: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    project_name: Optional[str] = None

    @classmethod
    def for_alert(cls, alert, value, now=None, project_name=None):
        return cls(
            alert=alert.snapshot(),
            current_value=float(value),
            threshold=alert.threshold,
            timestamp=now or datetime.now(timezone.utc),
            project_name=project_name,
        )

    @property
    def message(self) -> str:
        return (f"Alert triggered: {self.alert.name}. "
                f"Current value: {self.current_value}, Threshold: {self.threshold}")

    def to_webhook_payload(self):
        a = self.alert
        return {
            "event": "alert.triggered",
            "timestamp": self.timestamp.isoformat(),
            "alert": {
                "id": a.id,
                "name": a.name,
                "description": a.description,
                "severity": a.severity.value,
                "metric_type": a.metric_type,
                "project_id": a.project_id,
                "project_name": self.project_name,
            },
            "condition": {
                "type": a.condition.kind.value,
                "threshold": self.threshold,
                "current_value": self.current_value,
                "duration_seconds": a.condition.duration_seconds,
            },
            "metadata": {
                "source": SOURCE_NAME,
                "version": PAYLOAD_VERSION,
            },
        }


# ── channel config variants ─────────────────────────────

@dataclass(frozen=True)
class EmailChannelConfig:
    recipients: tuple


@dataclass(frozen=True)
class ChatChannelConfig:
    webhook_url: str
    channel: Optional[str] = None
    username: str = "Pulsewatch"
    icon_emoji: str = ":warning:"


@dataclass(frozen=True)
class WebhookChannelConfig:
    url: str
    headers: dict = field(default_factory=dict)
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class CustomChannelConfig:
    kind: str
    options: dict = field(default_factory=dict)


def _check_url(url, channel):
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise ValidationError(f"{channel}: invalid URL {url!r}")
    return url


def _recipients(raw):
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [r.strip() for r in raw.split(",")]
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(f"email: recipients must be a list, got {type(raw).__name__}")
    for r in raw:
        if not isinstance(r, str):
            raise ValidationError(f"email: recipient must be a string, got {r!r}")
    return tuple(r for r in raw if r)


def resolve_channel_config(channel, rule_config=None, defaults=None):
    """Resolve one channel's config from the rule, falling back to defaults.

    Returns None when the channel is unconfigured (nothing to send to).
    Raises ValidationError when a supplied value is malformed.
    """
    rule_config = rule_config or {}
    defaults = defaults or {}
    scoped = rule_config.get(channel)
    flat = not isinstance(scoped, dict)
    own = rule_config if flat else scoped
    fallback = defaults.get(channel, {}) or {}

    def lookup(*keys):
        for source in (own, fallback):
            for k in keys:
                if source.get(k):
                    return source[k]
        return None

    if channel == ChannelKind.EMAIL.value:
        recipients = _recipients(lookup("recipients", "default_recipients"))
        return EmailChannelConfig(recipients) if recipients else None

    if channel == ChannelKind.SLACK.value:
        # flat keys are shared by every channel, so slack reads only its own
        url = lookup("webhook_url") if flat else lookup("webhook_url", "url")
        if not url:
            return None
        return ChatChannelConfig(
            webhook_url=_check_url(url, channel),
            channel=lookup("channel"),
            username=lookup("username") or "Pulsewatch",
            icon_emoji=lookup("icon_emoji") or ":warning:",
        )

    if channel == ChannelKind.WEBHOOK.value:
        url = lookup("url") if flat else lookup("url", "webhook_url")
        if not url:
            return None
        headers = lookup("headers") or {}
        if not isinstance(headers, dict):
            raise ValidationError("webhook: headers must be a mapping")
        return WebhookChannelConfig(
            url=_check_url(url, channel),
            headers=dict(headers),
            timeout_seconds=float(lookup("timeout_seconds") or 10.0),
        )

    options = dict(fallback)
    if isinstance(scoped, dict):
        options.update(scoped)
    return CustomChannelConfig(kind=channel, options=options)


@dataclass
class ChannelResult:
    channel: str
    status: str  # sent | skipped | failed
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"
