"""Tests for the per-rule debounce state machine."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import timedelta
from alerts.debounce import CLEAR, DebounceState, DebounceStore, Decision, Phase
from conftest import T0


def _at(seconds):
    return T0 + timedelta(seconds=seconds)


def test_first_true_reading_goes_pending():
    store = DebounceStore()
    t = store.advance(1, True, _at(0), 60)
    assert t.decision is Decision.NONE
    assert t.current == DebounceState(Phase.PENDING, _at(0))


def test_fires_after_confirm_duration():
    store = DebounceStore()
    store.advance(1, True, _at(0), 60)
    assert store.advance(1, True, _at(30), 60).decision is Decision.NONE
    t = store.advance(1, True, _at(65), 60)
    assert t.decision is Decision.TRIGGER
    assert t.current.phase is Phase.FIRING


def test_anchor_is_not_refreshed():
    store = DebounceStore()
    store.advance(1, True, _at(0), 60)
    store.advance(1, True, _at(30), 60)
    assert store.get(1).since == _at(0)


def test_fires_exactly_once_per_episode():
    store = DebounceStore()
    decisions = [store.advance(1, True, _at(s), 60).decision for s in (0, 60, 120, 180)]
    assert decisions.count(Decision.TRIGGER) == 1


def test_false_reading_while_pending_clears_silently():
    store = DebounceStore()
    store.advance(1, True, _at(0), 60)
    t = store.advance(1, False, _at(30), 60)
    assert t.decision is Decision.NONE
    assert store.get(1) is CLEAR
    # a new episode starts from scratch
    store.advance(1, True, _at(40), 60)
    assert store.advance(1, True, _at(90), 60).decision is Decision.NONE


def test_resolve_from_firing():
    store = DebounceStore()
    store.advance(1, True, _at(0), 0)
    assert store.advance(1, True, _at(1), 0).decision is Decision.TRIGGER
    t = store.advance(1, False, _at(2), 0)
    assert t.decision is Decision.RESOLVE
    assert store.get(1) is CLEAR
    assert len(store) == 0


def test_zero_duration_fires_on_second_reading():
    store = DebounceStore()
    assert store.advance(1, True, _at(0), 0).decision is Decision.NONE
    assert store.advance(1, True, _at(0), 0).decision is Decision.TRIGGER


def test_veto_keeps_pending_with_anchor():
    store = DebounceStore()
    store.advance(1, True, _at(0), 60)
    t = store.advance(1, True, _at(90), 60, can_fire=False)
    assert t.decision is Decision.NONE
    assert store.get(1) == DebounceState(Phase.PENDING, _at(0))
    assert store.advance(1, True, _at(95), 60).decision is Decision.TRIGGER


def test_assume_firing_allows_resolve_after_restart():
    store = DebounceStore()
    t = store.advance(1, False, _at(0), 60, assume_firing=True)
    assert t.decision is Decision.RESOLVE


def test_assume_firing_does_not_retrigger():
    store = DebounceStore()
    t = store.advance(1, True, _at(0), 60, assume_firing=True)
    assert t.decision is Decision.NONE
    assert store.get(1).phase is Phase.FIRING


def test_restore_rolls_back():
    store = DebounceStore()
    store.advance(1, True, _at(0), 0)
    t = store.advance(1, True, _at(1), 0)
    store.restore(1, t.previous)
    assert store.get(1).phase is Phase.PENDING
    assert store.advance(1, True, _at(2), 0).decision is Decision.TRIGGER


def test_forget_and_isolation():
    store = DebounceStore()
    store.advance(1, True, _at(0), 60)
    store.advance(2, True, _at(0), 60)
    store.forget(1)
    assert store.get(1) is CLEAR
    assert store.get(2).phase is Phase.PENDING
    assert set(store.items()) == {2}
    store.clear()
    assert len(store) == 0
