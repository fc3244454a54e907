"""SQLite store for alert rules, metric samples, projects, and alert history."""
import json
import sqlite3
import logging
import threading
from datetime import datetime, timedelta, timezone
from functools import wraps
from pathlib import Path

from models.alerts import Alert
from models.enums import AlertStatus
from models.metrics import MetricSample

logger = logging.getLogger("pulsewatch.db")


class RepositoryError(Exception):
    """Rule or metric store I/O failure."""


def _guarded(method):
    """Serialize access to the shared connection and wrap sqlite errors."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        if self.conn is None:
            raise RepositoryError("Database is not connected")
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except sqlite3.Error as e:
                self.conn.rollback()
                raise RepositoryError(f"{method.__name__} failed: {e}") from e
    return wrapper


def _iso(ts):
    if ts is None:
        return None
    return _aware(ts).astimezone(timezone.utc).isoformat()


def _aware(ts):
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _now():
    return datetime.now(timezone.utc)


class Database:
    def __init__(self, db_path="data/pulsewatch.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT DEFAULT '',
                metric_type TEXT NOT NULL,
                condition TEXT NOT NULL,
                threshold REAL NOT NULL,
                duration_seconds INTEGER DEFAULT 60,
                severity TEXT NOT NULL,
                enabled INTEGER DEFAULT 1,
                cooldown_minutes REAL,
                notification_channels TEXT DEFAULT '[]',
                notification_config TEXT DEFAULT '{}',
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                triggered_at TEXT,
                acknowledged_at TEXT,
                acknowledged_by TEXT,
                resolved_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_project
                ON alerts(project_id);

            CREATE TABLE IF NOT EXISTS metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id TEXT NOT NULL,
                metric_type TEXT NOT NULL,
                value REAL NOT NULL,
                unit TEXT DEFAULT '',
                timestamp TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_metrics_lookup
                ON metrics(project_id, metric_type, timestamp);

            CREATE TABLE IF NOT EXISTS alert_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id INTEGER NOT NULL,
                event TEXT NOT NULL,
                message TEXT,
                metric_value REAL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_history_created
                ON alert_history(created_at);

            CREATE TABLE IF NOT EXISTS notification_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id INTEGER NOT NULL,
                channel TEXT NOT NULL,
                status TEXT NOT NULL,
                error TEXT,
                sent_at TEXT NOT NULL
            );
        """)
        self.conn.commit()

    # --- Projects ---

    @_guarded
    def save_project(self, project_id, name):
        self.conn.execute(
            "INSERT INTO projects (id, name) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET name = excluded.name",
            (str(project_id), name),
        )
        self.conn.commit()

    @_guarded
    def get_project_name(self, project_id):
        row = self.conn.execute(
            "SELECT name FROM projects WHERE id = ?", (str(project_id),)
        ).fetchone()
        return row["name"] if row else None

    # --- Alert rules ---

    def _row_to_alert(self, row):
        return Alert.from_dict({
            "id": row["id"],
            "project_id": row["project_id"],
            "name": row["name"],
            "description": row["description"] or "",
            "metric_type": row["metric_type"],
            "condition": row["condition"],
            "threshold": row["threshold"],
            "duration_seconds": row["duration_seconds"],
            "severity": row["severity"],
            "enabled": bool(row["enabled"]),
            "cooldown_minutes": row["cooldown_minutes"],
            "notification_channels": json.loads(row["notification_channels"] or "[]"),
            "notification_config": json.loads(row["notification_config"] or "{}"),
            "status": row["status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "triggered_at": row["triggered_at"],
            "acknowledged_at": row["acknowledged_at"],
            "acknowledged_by": row["acknowledged_by"],
            "resolved_at": row["resolved_at"],
        })

    def _alert_params(self, alert):
        return (
            alert.project_id, alert.name, alert.description, alert.metric_type,
            alert.condition.kind.value, alert.condition.threshold,
            alert.condition.duration_seconds, alert.severity.value,
            int(alert.enabled), alert.cooldown_minutes,
            json.dumps(alert.notification_channels),
            json.dumps(alert.notification_config),
            alert.status.value, _iso(alert.created_at), _iso(alert.updated_at),
            _iso(alert.triggered_at), _iso(alert.acknowledged_at),
            alert.acknowledged_by, _iso(alert.resolved_at),
        )

    @_guarded
    def create_alert(self, alert):
        cur = self.conn.execute("""
            INSERT INTO alerts
            (project_id, name, description, metric_type, condition, threshold,
             duration_seconds, severity, enabled, cooldown_minutes,
             notification_channels, notification_config, status, created_at,
             updated_at, triggered_at, acknowledged_at, acknowledged_by, resolved_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, self._alert_params(alert))
        self.conn.commit()
        alert.id = cur.lastrowid
        logger.debug(f"Created alert {alert.id} ({alert.name})")
        return alert

    @_guarded
    def update_alert(self, alert):
        cur = self.conn.execute("""
            UPDATE alerts SET
                project_id = ?, name = ?, description = ?, metric_type = ?,
                condition = ?, threshold = ?, duration_seconds = ?, severity = ?,
                enabled = ?, cooldown_minutes = ?, notification_channels = ?,
                notification_config = ?, status = ?, created_at = ?, updated_at = ?,
                triggered_at = ?, acknowledged_at = ?, acknowledged_by = ?,
                resolved_at = ?
            WHERE id = ?
        """, self._alert_params(alert) + (alert.id,))
        self.conn.commit()
        return cur.rowcount > 0

    @_guarded
    def get_alert(self, alert_id):
        row = self.conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
        return self._row_to_alert(row) if row else None

    @_guarded
    def find_alert_by_name(self, project_id, name):
        row = self.conn.execute(
            "SELECT * FROM alerts WHERE project_id = ? AND name = ?",
            (str(project_id), name),
        ).fetchone()
        return self._row_to_alert(row) if row else None

    @_guarded
    def list_alerts(self, project_id=None, status=None):
        query = "SELECT * FROM alerts WHERE 1 = 1"
        params = []
        if project_id is not None:
            query += " AND project_id = ?"
            params.append(str(project_id))
        if status is not None:
            query += " AND status = ?"
            params.append(AlertStatus(status).value)
        query += " ORDER BY id"
        return [self._row_to_alert(r) for r in self.conn.execute(query, params).fetchall()]

    @_guarded
    def list_evaluable_alerts(self):
        """Enabled rules that have not been switched off."""
        rows = self.conn.execute(
            "SELECT * FROM alerts WHERE enabled = 1 AND status != ? ORDER BY id",
            (AlertStatus.INACTIVE.value,),
        ).fetchall()
        return [self._row_to_alert(r) for r in rows]

    @_guarded
    def delete_alert(self, alert_id):
        cur = self.conn.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def _set_status(self, alert_id, assignments, params, at):
        row = self.conn.execute(
            "SELECT created_at, updated_at FROM alerts WHERE id = ?", (alert_id,)
        ).fetchone()
        if row is None:
            raise RepositoryError(f"Alert {alert_id} not found")
        # updated_at only moves forward
        floor = max(datetime.fromisoformat(row["updated_at"] or row["created_at"]),
                    datetime.fromisoformat(row["created_at"]))
        updated = at if at > floor else floor + timedelta(microseconds=1)
        self.conn.execute(
            f"UPDATE alerts SET {assignments}, updated_at = ? WHERE id = ?",
            params + (_iso(updated), alert_id),
        )
        self.conn.commit()
        row = self.conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
        return self._row_to_alert(row)

    @_guarded
    def mark_triggered(self, alert_id, at=None):
        at = _aware(at or _now())
        return self._set_status(
            alert_id, "status = ?, triggered_at = ?",
            (AlertStatus.ACTIVE.value, _iso(at)), at,
        )

    @_guarded
    def mark_resolved(self, alert_id, at=None):
        at = _aware(at or _now())
        return self._set_status(
            alert_id, "status = ?, resolved_at = ?",
            (AlertStatus.RESOLVED.value, _iso(at)), at,
        )

    @_guarded
    def mark_acknowledged(self, alert_id, actor, at=None):
        at = _aware(at or _now())
        return self._set_status(
            alert_id, "status = ?, acknowledged_at = ?, acknowledged_by = ?",
            (AlertStatus.ACKNOWLEDGED.value, _iso(at), actor), at,
        )

    # --- Metrics ---

    @_guarded
    def record_metric(self, sample):
        cur = self.conn.execute(
            "INSERT INTO metrics (project_id, metric_type, value, unit, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (str(sample.project_id), sample.metric_type, float(sample.value),
             sample.unit, _iso(sample.timestamp)),
        )
        self.conn.commit()
        return cur.lastrowid

    @_guarded
    def get_latest_metric(self, project_id, metric_type):
        row = self.conn.execute("""
            SELECT * FROM metrics
            WHERE project_id = ? AND metric_type = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
        """, (str(project_id), metric_type)).fetchone()
        if row is None:
            return None
        return MetricSample(
            id=row["id"],
            project_id=row["project_id"],
            metric_type=row["metric_type"],
            value=row["value"],
            unit=row["unit"] or "",
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )

    # --- History ---

    @_guarded
    def save_alert_event(self, alert_id, event, message="", metric_value=None, at=None):
        self.conn.execute(
            "INSERT INTO alert_history (alert_id, event, message, metric_value, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (alert_id, event, message, metric_value, _iso(at or _now())),
        )
        self.conn.commit()

    @_guarded
    def get_recent_alert_events(self, limit=50):
        rows = self.conn.execute(
            "SELECT * FROM alert_history ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [dict(r) for r in rows]

    @_guarded
    def save_notification_result(self, alert_id, channel, status, error=None, at=None):
        self.conn.execute(
            "INSERT INTO notification_log (alert_id, channel, status, error, sent_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (alert_id, channel, status, error, _iso(at or _now())),
        )
        self.conn.commit()

    @_guarded
    def get_notification_log(self, alert_id=None, limit=50):
        if alert_id is None:
            rows = self.conn.execute(
                "SELECT * FROM notification_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM notification_log WHERE alert_id = ? ORDER BY id DESC LIMIT ?",
                (alert_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]
