"""Tests for the evaluation scheduler."""
import pytest
import sys
import os
import threading
import time
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import MagicMock
from alerts.debounce import Decision
from monitor.scheduler import EvaluationScheduler, TickReport
from conftest import make_alert


def _rules(*ids):
    return [make_alert(id=i, name=f"rule-{i}") for i in ids]


def test_run_once_collects_decisions():
    engine = MagicMock()
    engine.list_rules.return_value = _rules(1, 2)
    engine.evaluate.side_effect = lambda r: Decision.TRIGGER if r.id == 1 else Decision.NONE

    report = EvaluationScheduler(engine).run_once()
    assert report.evaluated == 2
    assert report.triggered == [1]
    assert report.resolved == []


def test_one_rule_failure_does_not_stop_others():
    engine = MagicMock()
    engine.list_rules.return_value = _rules(1, 2, 3)

    def evaluate(rule):
        if rule.id == 2:
            raise RuntimeError("db hiccup")
        return Decision.RESOLVE

    engine.evaluate.side_effect = evaluate
    report = EvaluationScheduler(engine).run_once()
    assert report.failed == 1
    assert report.evaluated == 2
    assert sorted(report.resolved) == [1, 3]


def test_empty_rule_list():
    engine = MagicMock()
    engine.list_rules.return_value = []
    report = EvaluationScheduler(engine).run_once()
    assert report == TickReport()
    engine.evaluate.assert_not_called()


def test_overlapping_tick_is_skipped():
    engine = MagicMock()
    entered = threading.Event()
    release = threading.Event()

    def slow(rule):
        entered.set()
        release.wait(5)
        return Decision.NONE

    engine.list_rules.return_value = _rules(1)
    engine.evaluate.side_effect = slow
    sched = EvaluationScheduler(engine)

    worker = threading.Thread(target=sched.run_once)
    worker.start()
    assert entered.wait(5)
    assert sched.run_once() is None
    release.set()
    worker.join(5)
    assert engine.evaluate.call_count == 1


def test_in_flight_rule_is_skipped():
    engine = MagicMock()
    sched = EvaluationScheduler(engine)
    rule = _rules(1)[0]
    sched._in_flight.add(rule.id)
    assert sched._evaluate_guarded(rule) == "skipped"
    engine.evaluate.assert_not_called()


def test_listing_failure_propagates_from_run_once():
    engine = MagicMock()
    engine.list_rules.side_effect = RuntimeError("store down")
    sched = EvaluationScheduler(engine)
    with pytest.raises(RuntimeError):
        sched.run_once()
    # the lock was released
    engine.list_rules.side_effect = None
    engine.list_rules.return_value = []
    assert sched.run_once() is not None


def test_tick_job_survives_listing_failure():
    engine = MagicMock()
    engine.list_rules.side_effect = RuntimeError("store down")
    sched = EvaluationScheduler(engine)
    sched._running = True
    for _ in range(5):
        sched._tick_job()
    assert sched._consecutive_failures == 5


def test_tick_callbacks_receive_report():
    engine = MagicMock()
    engine.list_rules.return_value = _rules(1)
    engine.evaluate.return_value = Decision.NONE
    sched = EvaluationScheduler(engine)
    sched._running = True
    seen = []
    sched.on_tick(seen.append)
    sched.on_tick(MagicMock(side_effect=ValueError("bad callback")))
    sched._tick_job()
    assert len(seen) == 1
    assert seen[0].evaluated == 1


def test_start_and_stop():
    engine = MagicMock()
    engine.list_rules.return_value = []
    sched = EvaluationScheduler(engine, interval_seconds=60)
    sched.start()
    assert sched.running
    deadline = time.time() + 5
    while not engine.list_rules.called and time.time() < deadline:
        time.sleep(0.01)
    sched.stop(timeout=5)
    assert not sched.running
    assert engine.list_rules.called


def test_stop_is_idempotent():
    sched = EvaluationScheduler(MagicMock())
    sched.stop()
    sched.stop()
    assert not sched.running


def test_start_twice_keeps_one_thread():
    engine = MagicMock()
    engine.list_rules.return_value = []
    sched = EvaluationScheduler(engine)
    sched.start()
    thread = sched._thread
    sched.start()
    assert sched._thread is thread
    sched.stop(timeout=5)


def test_restart_after_stop():
    engine = MagicMock()
    engine.list_rules.return_value = []
    sched = EvaluationScheduler(engine)
    sched.start()
    sched.stop(timeout=5)
    engine.list_rules.reset_mock()
    sched.start()
    deadline = time.time() + 5
    while not engine.list_rules.called and time.time() < deadline:
        time.sleep(0.01)
    assert sched.running
    sched.stop(timeout=5)
    assert engine.list_rules.called
