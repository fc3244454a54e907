"""Data models."""
from models.enums import ConditionKind, Severity, AlertStatus, ChannelKind
from models.alerts import Alert, Condition, ValidationError
from models.metrics import MetricSample
from models.notifications import NotificationContext, ChannelResult, resolve_channel_config
