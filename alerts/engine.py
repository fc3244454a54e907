"""Alert evaluation engine: one rule, one tick, one decision."""
import logging
from datetime import datetime, timezone

from alerts.debounce import Decision, DebounceStore
from monitor.metrics import StaleDataError

logger = logging.getLogger("pulsewatch.alerts.engine")


class AlertEngine:
    def __init__(self, store, metrics, publisher, states=None, clock=None):
        self.store = store
        self.metrics = metrics
        self.publisher = publisher
        self.states = states if states is not None else DebounceStore()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def list_rules(self):
        return self.store.list_evaluable_alerts()

    def evaluate(self, rule):
        """Evaluate ``rule`` against its latest sample and act on the decision.

        Persistence and publishing errors propagate after the debounce state
        is rolled back, so the same decision is retried on the next tick.
        """
        now = self.clock()
        if not rule.enabled:
            self.states.forget(rule.id)
            return Decision.NONE

        try:
            sample = self.metrics.fresh_sample(rule.project_id, rule.metric_type, now)
        except StaleDataError as e:
            logger.debug(f"Skipping alert {rule.id}: {e}")
            return Decision.NONE
        if sample is None:
            logger.debug(f"Skipping alert {rule.id}: no {rule.metric_type} samples")
            return Decision.NONE

        raw = rule.evaluate(sample.value)
        transition = self.states.advance(
            rule.id,
            raw,
            now,
            rule.condition.duration_seconds,
            can_fire=rule.should_trigger(sample.value, now, metric_type=sample.metric_type),
            assume_firing=rule.is_firing,
        )

        try:
            if transition.decision is Decision.TRIGGER:
                self.publisher.publish_trigger(rule, sample.value, now)
            elif transition.decision is Decision.RESOLVE:
                self.publisher.publish_resolve(rule, now)
        except Exception:
            self.states.restore(rule.id, transition.previous)
            raise
        return transition.decision

    def test_rules(self):
        """Report what each rule's condition reads right now, without side effects."""
        now = self.clock()
        results = []
        for rule in self.store.list_alerts():
            sample = self.metrics.latest(rule.project_id, rule.metric_type)
            value = sample.value if sample else None
            stale = sample is not None and sample.age_seconds(now) > self.metrics.staleness_seconds
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "metric": rule.metric_type,
                "condition": rule.condition.kind.value,
                "threshold": rule.threshold,
                "current_value": value,
                "stale": stale,
                "condition_met": rule.evaluate(value) if value is not None else False,
                "phase": self.states.get(rule.id).phase.value,
                "enabled": rule.enabled,
            })
        return results

    # ── management ──────────────────────────────────────

    def disable_rule(self, rule_id):
        rule = self.store.get_alert(rule_id)
        if rule is None:
            return None
        if rule.is_firing:
            # close the open episode so re-enabling starts a fresh one
            rule.mark_resolved(self.clock())
        rule.disable()
        self.store.update_alert(rule)
        self.states.forget(rule_id)
        return rule

    def enable_rule(self, rule_id):
        rule = self.store.get_alert(rule_id)
        if rule is None:
            return None
        rule.enable()
        self.store.update_alert(rule)
        return rule

    def delete_rule(self, rule_id):
        deleted = self.store.delete_alert(rule_id)
        self.states.forget(rule_id)
        return deleted
