"""Persists rule status transitions and publishes lifecycle events."""
import logging
from datetime import datetime, timezone

from alerts.broadcaster import project_room

logger = logging.getLogger("pulsewatch.alerts.lifecycle")

TRIGGERED = "alert:triggered"
RESOLVED = "alert:resolved"
ACKNOWLEDGED = "alert:acknowledged"


class LifecyclePublisher:
    """Applies trigger / resolve / acknowledge to the Rule Store.

    Ordering on trigger: status write, then notification dispatch, then the
    event. A failed status write raises RepositoryError before anything is
    sent or published.
    """

    def __init__(self, store, dispatcher, broadcaster, clock=None):
        self.store = store
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def publish_trigger(self, rule, value, now=None):
        now = now or self.clock()
        updated = self.store.mark_triggered(rule.id, now)
        rule.mark_triggered(now)

        try:
            results = self.dispatcher.dispatch(updated, value, now)
        except Exception as e:
            logger.error(f"Notification dispatch failed for alert {rule.id}: {e}")
            results = []
        sent = sum(1 for r in results if r.ok)

        message = (f"Alert triggered: {rule.name}. "
                   f"Current value: {value}, Threshold: {rule.threshold}")
        self._history(rule.id, "triggered", message, value, now)
        self._emit(TRIGGERED, rule.project_id, {
            "alertId": rule.id,
            "projectId": rule.project_id,
            "name": rule.name,
            "severity": rule.severity.value,
            "message": message,
            "timestamp": now.isoformat(),
        })
        logger.info(f"Alert triggered: {rule.name} (ID: {rule.id}), "
                    f"{sent}/{len(results)} channel(s) notified")
        return results

    def publish_resolve(self, rule, now=None):
        now = now or self.clock()
        self.store.mark_resolved(rule.id, now)
        rule.mark_resolved(now)

        message = f"Alert resolved: {rule.name}"
        self._history(rule.id, "resolved", message, None, now)
        self._emit(RESOLVED, rule.project_id, {
            "alertId": rule.id,
            "projectId": rule.project_id,
            "name": rule.name,
            "message": message,
            "timestamp": now.isoformat(),
        })
        logger.info(f"Alert resolved: {rule.name} (ID: {rule.id})")

    def acknowledge(self, rule_id, actor, now=None):
        """Externally triggered acknowledge. Returns the updated rule."""
        now = now or self.clock()
        rule = self.store.get_alert(rule_id)
        if rule is None:
            raise KeyError(f"Alert {rule_id} not found")
        rule.acknowledge(actor, now)
        updated = self.store.mark_acknowledged(rule_id, actor, now)

        self._history(rule_id, "acknowledged", f"Acknowledged by {actor}", None, now)
        self._emit(ACKNOWLEDGED, updated.project_id, updated.to_dict())
        logger.info(f"Alert acknowledged: {updated.name} (ID: {rule_id}) by {actor}")
        return updated

    def _emit(self, event, project_id, payload):
        self.broadcaster.publish(event, payload, room=project_room(project_id))
        self.broadcaster.publish(event, payload)

    def _history(self, rule_id, event, message, value, now):
        try:
            self.store.save_alert_event(rule_id, event, message, value, now)
        except Exception as e:
            logger.warning(f"Could not record {event} history for alert {rule_id}: {e}")
