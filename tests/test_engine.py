"""Tests for end-to-end rule evaluation: metric -> debounce -> lifecycle."""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import MagicMock
from alerts.broadcaster import EventBroadcaster
from alerts.debounce import Decision, Phase
from alerts.dispatcher import NotificationDispatcher
from alerts.engine import AlertEngine
from alerts.lifecycle import LifecyclePublisher, TRIGGERED, RESOLVED
from models.database import RepositoryError
from models.enums import AlertStatus
from models.metrics import MetricSample
from monitor.metrics import MetricAccessor
from conftest import make_alert


class Harness:
    """Real store and lifecycle, mocked channel, fake clock."""

    def __init__(self, db, clock, **rule_fields):
        self.db = db
        self.clock = clock
        db.save_project("web", "Web Frontend")
        self.rule = db.create_alert(make_alert(**rule_fields))
        self.channel = MagicMock()
        self.dispatcher = NotificationDispatcher(
            {"console": self.channel}, store=db, project_names=db.get_project_name, clock=clock,
        )
        self.broadcaster = EventBroadcaster()
        self.events = []
        for event in (TRIGGERED, RESOLVED):
            self.broadcaster.subscribe(event, lambda e, p: self.events.append((e, p)))
        self.publisher = LifecyclePublisher(db, self.dispatcher, self.broadcaster, clock=clock)
        self.metrics = MetricAccessor(db, staleness_seconds=600, clock=clock)
        self.engine = AlertEngine(db, self.metrics, self.publisher, clock=clock)

    def reading(self, seconds, value):
        """Record ``value`` at T0+seconds and run one evaluation of the rule."""
        now = self.clock.at(seconds)
        self.db.record_metric(MetricSample("web", "cpu", value, timestamp=now))
        return self.engine.evaluate(self.db.get_alert(self.rule.id))


@pytest.fixture
def harness(temp_db, clock):
    return Harness(temp_db, clock)


def test_single_trigger_after_confirm_duration(harness):
    assert harness.reading(0, 85) is Decision.NONE
    assert harness.reading(30, 85) is Decision.NONE
    assert harness.reading(65, 85) is Decision.TRIGGER

    assert harness.channel.send.call_count == 1
    context = harness.channel.send.call_args[0][0]
    assert context.current_value == 85.0
    assert context.project_name == "Web Frontend"

    stored = harness.db.get_alert(harness.rule.id)
    assert stored.status is AlertStatus.ACTIVE
    assert stored.triggered_at == harness.clock.at(65)
    assert [e for e, _ in harness.events] == [TRIGGERED]


def test_resolve_does_not_notify(harness):
    for s in (0, 30, 65):
        harness.reading(s, 85)
    assert harness.reading(70, 70) is Decision.RESOLVE

    assert harness.channel.send.call_count == 1
    stored = harness.db.get_alert(harness.rule.id)
    assert stored.status is AlertStatus.RESOLVED
    assert stored.resolved_at == harness.clock.at(70)
    assert [e for e, _ in harness.events] == [TRIGGERED, RESOLVED]

    history = [h["event"] for h in harness.db.get_recent_alert_events()]
    assert history == ["resolved", "triggered"]


def test_still_firing_does_not_renotify(harness):
    for s in (0, 65, 120, 180, 240):
        harness.reading(s, 90)
    assert harness.channel.send.call_count == 1


def test_notification_outcome_is_logged(harness):
    harness.reading(0, 85)
    harness.reading(65, 85)
    log = harness.db.get_notification_log(harness.rule.id)
    assert len(log) == 1
    assert log[0]["channel"] == "console"
    assert log[0]["status"] == "sent"


def test_disabled_mid_pending_never_fires(harness):
    harness.reading(0, 85)
    assert harness.engine.states.get(harness.rule.id).phase is Phase.PENDING

    harness.engine.disable_rule(harness.rule.id)
    assert harness.engine.states.get(harness.rule.id).phase is Phase.CLEAR
    assert harness.reading(65, 85) is Decision.NONE
    assert harness.engine.list_rules() == []

    # re-enabling starts a fresh episode
    harness.engine.enable_rule(harness.rule.id)
    assert harness.reading(70, 85) is Decision.NONE
    assert harness.engine.states.get(harness.rule.id).since == harness.clock.at(70)
    harness.channel.send.assert_not_called()


def test_disabled_while_firing_fires_again_after_enable(harness):
    for s in (0, 65):
        harness.reading(s, 85)
    assert harness.channel.send.call_count == 1

    harness.engine.disable_rule(harness.rule.id)
    stored = harness.db.get_alert(harness.rule.id)
    assert stored.is_firing is False
    assert stored.resolved_at == harness.clock.at(65)

    harness.engine.enable_rule(harness.rule.id)
    assert harness.reading(100, 85) is Decision.NONE
    assert harness.engine.states.get(harness.rule.id).phase is Phase.PENDING
    assert harness.reading(200, 85) is Decision.TRIGGER
    assert harness.channel.send.call_count == 2


def test_stale_sample_is_skipped(harness):
    harness.db.record_metric(MetricSample("web", "cpu", 95, timestamp=harness.clock.at(0)))
    harness.clock.at(15 * 60)
    assert harness.engine.evaluate(harness.db.get_alert(harness.rule.id)) is Decision.NONE
    assert len(harness.engine.states) == 0


def test_no_sample_is_skipped(harness):
    assert harness.engine.evaluate(harness.db.get_alert(harness.rule.id)) is Decision.NONE
    assert len(harness.engine.states) == 0


def test_cooldown_delays_next_episode(temp_db, clock):
    h = Harness(temp_db, clock, cooldown_minutes=15)
    for s in (0, 65):
        h.reading(s, 85)
    h.reading(70, 10)
    h.reading(80, 85)
    assert h.reading(200, 85) is Decision.NONE
    assert h.engine.states.get(h.rule.id).phase is Phase.PENDING
    assert h.reading(970, 85) is Decision.TRIGGER
    assert h.channel.send.call_count == 2


def test_failed_status_write_rolls_back_state(temp_db, clock):
    h = Harness(temp_db, clock)
    publisher = MagicMock()
    publisher.publish_trigger.side_effect = [RepositoryError("disk full"), []]
    h.engine.publisher = publisher

    h.reading(0, 85)
    with pytest.raises(RepositoryError):
        h.reading(65, 85)
    assert h.engine.states.get(h.rule.id).phase is Phase.PENDING

    assert h.reading(70, 85) is Decision.TRIGGER
    assert publisher.publish_trigger.call_count == 2


def test_restart_adopts_firing_status(temp_db, clock):
    h = Harness(temp_db, clock)
    temp_db.mark_triggered(h.rule.id, clock.at(0))

    # fresh engine, empty debounce map
    engine = AlertEngine(temp_db, h.metrics, h.publisher, clock=clock)
    h.engine = engine
    assert h.reading(10, 95) is Decision.NONE
    h.channel.send.assert_not_called()
    assert h.reading(20, 50) is Decision.RESOLVE
    assert temp_db.get_alert(h.rule.id).status is AlertStatus.RESOLVED


def test_delete_rule_forgets_state(harness):
    harness.reading(0, 85)
    assert harness.engine.delete_rule(harness.rule.id) is True
    assert len(harness.engine.states) == 0
    assert harness.db.get_alert(harness.rule.id) is None


def test_test_rules_reports_without_side_effects(harness):
    harness.db.record_metric(MetricSample("web", "cpu", 91, timestamp=harness.clock.at(0)))
    results = harness.engine.test_rules()
    assert len(results) == 1
    r = results[0]
    assert r["current_value"] == 91.0
    assert r["condition_met"] is True
    assert r["stale"] is False
    assert r["phase"] == "clear"
    harness.channel.send.assert_not_called()
