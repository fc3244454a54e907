"""Per-rule debounce state machine: Clear -> Pending(since) -> Firing -> Clear.

A condition must read true continuously for the rule's confirm duration
before a trigger is emitted, and a confirmed episode fires exactly once.
The anchor of a pending confirmation is fixed at first detection.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger("pulsewatch.alerts.debounce")


class Phase(str, Enum):
    CLEAR = "clear"
    PENDING = "pending"
    FIRING = "firing"


class Decision(str, Enum):
    NONE = "none"
    TRIGGER = "trigger"
    RESOLVE = "resolve"


@dataclass(frozen=True)
class DebounceState:
    phase: Phase = Phase.CLEAR
    since: Optional[datetime] = None


CLEAR = DebounceState()


@dataclass(frozen=True)
class Transition:
    decision: Decision
    previous: DebounceState
    current: DebounceState


class DebounceStore:
    """Lock-protected map of rule id -> DebounceState, held in memory only."""

    def __init__(self):
        self._states = {}
        self._lock = threading.Lock()

    def get(self, rule_id):
        with self._lock:
            return self._states.get(rule_id, CLEAR)

    def advance(self, rule_id, raw, now, confirm_seconds, can_fire=True, assume_firing=False):
        """Feed one evaluation into the machine and return the transition.

        ``can_fire`` lets the rule veto a confirmed trigger (cooldown); the
        confirmation then stays pending with its anchor. ``assume_firing``
        seeds Firing for a rule with no in-memory state that the store
        reports as still firing.
        """
        with self._lock:
            if rule_id in self._states:
                previous = self._states[rule_id]
            elif assume_firing:
                previous = DebounceState(Phase.FIRING, now)
            else:
                previous = CLEAR
            current, decision = self._next(previous, raw, now, confirm_seconds, can_fire)
            if current.phase is Phase.CLEAR:
                self._states.pop(rule_id, None)
            else:
                self._states[rule_id] = current
        if current != previous:
            logger.debug(f"Rule {rule_id}: {previous.phase.value} -> {current.phase.value}")
        return Transition(decision, previous, current)

    @staticmethod
    def _next(state, raw, now, confirm_seconds, can_fire):
        if not raw:
            if state.phase is Phase.FIRING:
                return CLEAR, Decision.RESOLVE
            return CLEAR, Decision.NONE

        if state.phase is Phase.CLEAR:
            return DebounceState(Phase.PENDING, now), Decision.NONE

        if state.phase is Phase.PENDING:
            elapsed = (now - state.since).total_seconds()
            if elapsed >= confirm_seconds and can_fire:
                return DebounceState(Phase.FIRING, now), Decision.TRIGGER
            return state, Decision.NONE

        return state, Decision.NONE

    def restore(self, rule_id, state):
        """Put back a previous state, e.g. after a failed status write."""
        with self._lock:
            if state.phase is Phase.CLEAR:
                self._states.pop(rule_id, None)
            else:
                self._states[rule_id] = state

    def forget(self, rule_id):
        with self._lock:
            self._states.pop(rule_id, None)

    def clear(self):
        with self._lock:
            self._states.clear()

    def items(self):
        with self._lock:
            return dict(self._states)

    def __len__(self):
        with self._lock:
            return len(self._states)
