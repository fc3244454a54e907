"""Dataclasses for alert rules and their conditions."""
import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from models.enums import AlertStatus, ConditionKind, Severity, SEVERITY_SCORES

EQUALITY_TOLERANCE = 0.001
DEFAULT_DURATION_SECONDS = 60


class ValidationError(ValueError):
    """Raised when a rule or channel config is malformed."""


def _utcnow():
    return datetime.now(timezone.utc)


def _parse_enum(enum_cls, value, label):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise ValidationError(f"Invalid alert {label}: {value!r}") from None


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Condition:
    kind: ConditionKind = ConditionKind.GREATER_THAN
    threshold: float = 0.0
    duration_seconds: int = DEFAULT_DURATION_SECONDS

    def __post_init__(self):
        self.kind = _parse_enum(ConditionKind, self.kind, "condition")
        try:
            self.threshold = float(self.threshold)
        except (TypeError, ValueError):
            raise ValidationError(f"Threshold must be numeric: {self.threshold!r}") from None
        if self.duration_seconds is None:
            self.duration_seconds = DEFAULT_DURATION_SECONDS
        try:
            self.duration_seconds = int(self.duration_seconds)
        except (TypeError, ValueError):
            raise ValidationError(f"duration_seconds must be an integer: {self.duration_seconds!r}") from None
        if self.duration_seconds < 0:
            raise ValidationError("duration_seconds must be >= 0")

    def matches(self, value) -> bool:
        if value is None:
            return False
        value = float(value)
        if self.kind is ConditionKind.GREATER_THAN:
            return value > self.threshold
        if self.kind is ConditionKind.LESS_THAN:
            return value < self.threshold
        if self.kind is ConditionKind.EQUALS:
            return abs(value - self.threshold) < EQUALITY_TOLERANCE
        return abs(value - self.threshold) >= EQUALITY_TOLERANCE

    def describe(self) -> str:
        return self.kind.value.replace("_", " ")


@dataclass
class Alert:
    """A named threshold rule over one metric type, owned by a project.

    Construction validates name, condition kind and severity; an invalid
    rule raises ValidationError and is never half-built. Mutators bump
    ``updated_at`` but do not persist anything: the Rule Store does that.
    """
    id: Optional[int] = None
    project_id: str = ""
    name: str = ""
    metric_type: str = ""
    condition: Condition = field(default_factory=Condition)
    severity: Severity = Severity.MEDIUM
    description: str = ""
    enabled: bool = True
    cooldown_minutes: Optional[float] = None
    notification_channels: list = field(default_factory=list)
    notification_config: dict = field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
    triggered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name or not str(self.name).strip():
            raise ValidationError("Alert name is required")
        if isinstance(self.condition, dict):
            self.condition = Condition(**self.condition)
        self.severity = _parse_enum(Severity, self.severity, "severity")
        self.status = _parse_enum(AlertStatus, self.status, "status")
        if self.cooldown_minutes is not None:
            try:
                self.cooldown_minutes = float(self.cooldown_minutes)
            except (TypeError, ValueError):
                raise ValidationError(f"cooldown_minutes must be numeric: {self.cooldown_minutes!r}") from None
        if self.cooldown_minutes is not None and self.cooldown_minutes < 0:
            raise ValidationError("cooldown_minutes must be >= 0")
        self.project_id = str(self.project_id)
        self.notification_channels = [str(c).lower() for c in (self.notification_channels or [])]
        self.notification_config = dict(self.notification_config or {})
        self.created_at = _parse_datetime(self.created_at)
        self.updated_at = _parse_datetime(self.updated_at) or self.created_at
        self.triggered_at = _parse_datetime(self.triggered_at)
        self.acknowledged_at = _parse_datetime(self.acknowledged_at)
        self.resolved_at = _parse_datetime(self.resolved_at)

    # ── evaluation ──────────────────────────────────────

    @property
    def threshold(self) -> float:
        return self.condition.threshold

    @property
    def severity_score(self) -> int:
        return SEVERITY_SCORES[self.severity]

    @property
    def is_firing(self) -> bool:
        """Triggered and not resolved since."""
        if self.triggered_at is None or self.status is AlertStatus.INACTIVE:
            return False
        return self.resolved_at is None or self.resolved_at < self.triggered_at

    def evaluate(self, value) -> bool:
        return self.condition.matches(value)

    def in_cooldown(self, now=None) -> bool:
        if not self.cooldown_minutes or self.triggered_at is None:
            return False
        now = now or _utcnow()
        return now - self.triggered_at < timedelta(minutes=self.cooldown_minutes)

    def should_trigger(self, value, now=None, metric_type=None) -> bool:
        if not self.enabled:
            return False
        if metric_type is not None and metric_type != self.metric_type:
            return False
        if self.in_cooldown(now):
            return False
        return self.evaluate(value)

    # ── mutations ───────────────────────────────────────

    def _touch(self, now=None):
        now = now or _utcnow()
        floor = max(self.updated_at, self.created_at)
        if now <= floor:
            now = floor + timedelta(microseconds=1)
        self.updated_at = now

    def mark_triggered(self, now=None):
        now = now or _utcnow()
        self.triggered_at = now
        self.status = AlertStatus.ACTIVE
        self._touch(now)

    def mark_resolved(self, now=None):
        now = now or _utcnow()
        self.resolved_at = now
        self.status = AlertStatus.RESOLVED
        self._touch(now)

    def acknowledge(self, actor, now=None):
        if self.status is not AlertStatus.ACTIVE:
            raise ValidationError("Only active alerts can be acknowledged")
        now = now or _utcnow()
        self.status = AlertStatus.ACKNOWLEDGED
        self.acknowledged_at = now
        self.acknowledged_by = actor
        self._touch(now)

    def enable(self):
        self.enabled = True
        self._touch()

    def disable(self):
        self.enabled = False
        self._touch()

    def update_threshold(self, threshold):
        self.condition = Condition(self.condition.kind, threshold, self.condition.duration_seconds)
        self._touch()

    def update_severity(self, severity):
        self.severity = _parse_enum(Severity, severity, "severity")
        self._touch()

    # ── serialization ───────────────────────────────────

    def snapshot(self):
        """Deep copy, safe to hand to other threads."""
        return copy.deepcopy(self)

    def to_dict(self):
        def iso(ts):
            return ts.isoformat() if ts else None

        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "description": self.description,
            "metricType": self.metric_type,
            "condition": self.condition.kind.value,
            "threshold": self.condition.threshold,
            "durationSeconds": self.condition.duration_seconds,
            "severity": self.severity.value,
            "enabled": self.enabled,
            "cooldownMinutes": self.cooldown_minutes,
            "notificationChannels": list(self.notification_channels),
            "notificationConfig": copy.deepcopy(self.notification_config),
            "status": self.status.value,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "triggeredAt": iso(self.triggered_at),
            "acknowledgedAt": iso(self.acknowledged_at),
            "acknowledgedBy": self.acknowledged_by,
            "resolvedAt": iso(self.resolved_at),
        }

    @classmethod
    def from_dict(cls, data):
        """Build from camelCase API fields or snake_case storage fields."""
        def pick(*keys, default=None):
            for k in keys:
                if k in data and data[k] is not None:
                    return data[k]
            return default

        raw_condition = pick("condition", default=ConditionKind.GREATER_THAN)
        if isinstance(raw_condition, dict):
            kind = raw_condition.get("kind", raw_condition.get("type"))
            threshold = raw_condition.get("threshold", pick("threshold"))
            duration = raw_condition.get("duration_seconds", pick("durationSeconds", "duration_seconds"))
        else:
            kind = raw_condition
            threshold = pick("threshold")
            duration = pick("durationSeconds", "duration_seconds")
        if threshold is None:
            raise ValidationError("Threshold is required")

        return cls(
            id=pick("id"),
            project_id=pick("projectId", "project_id", default=""),
            name=pick("name", default=""),
            metric_type=pick("metricType", "metric_type", default=""),
            condition=Condition(kind, threshold, duration),
            severity=pick("severity", default=Severity.MEDIUM),
            description=pick("description", default=""),
            enabled=bool(pick("enabled", default=True)),
            cooldown_minutes=pick("cooldownMinutes", "cooldown_minutes"),
            notification_channels=pick("notificationChannels", "notification_channels", default=[]),
            notification_config=pick("notificationConfig", "notification_config", default={}),
            status=pick("status", default=AlertStatus.ACTIVE),
            created_at=pick("createdAt", "created_at", default=None) or _utcnow(),
            updated_at=pick("updatedAt", "updated_at"),
            triggered_at=pick("triggeredAt", "triggered_at"),
            acknowledged_at=pick("acknowledgedAt", "acknowledged_at"),
            acknowledged_by=pick("acknowledgedBy", "acknowledged_by"),
            resolved_at=pick("resolvedAt", "resolved_at"),
        )
