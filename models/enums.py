"""Enums for condition kinds, severity, rule status, and channels."""
from enum import Enum


class ConditionKind(str, Enum):
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    WARNING = "warning"  # legacy alias of HIGH
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


SEVERITY_SCORES = {
    Severity.CRITICAL: 5,
    Severity.HIGH: 4,
    Severity.WARNING: 4,
    Severity.MEDIUM: 3,
    Severity.LOW: 2,
    Severity.INFO: 1,
}


class AlertStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class ChannelKind(str, Enum):
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    CONSOLE = "console"
    FILE = "file"
