"""Background scheduler for periodic alert evaluation."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import schedule

from alerts.debounce import Decision

logger = logging.getLogger("pulsewatch.scheduler")


@dataclass
class TickReport:
    evaluated: int = 0
    skipped: int = 0
    failed: int = 0
    decisions: dict = field(default_factory=dict)

    @property
    def triggered(self):
        return [rid for rid, d in self.decisions.items() if d is Decision.TRIGGER]

    @property
    def resolved(self):
        return [rid for rid, d in self.decisions.items() if d is Decision.RESOLVE]


class EvaluationScheduler:
    def __init__(self, engine, interval_seconds=60, max_workers=4):
        self.engine = engine
        self.interval = interval_seconds
        self.max_workers = max_workers
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._stop_event = None
        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._in_flight = set()
        self._in_flight_lock = threading.Lock()
        self._callbacks = []
        self._consecutive_failures = 0

    def on_tick(self, callback):
        """Register callback called with the TickReport after each tick."""
        self._callbacks.append(callback)

    @property
    def running(self):
        return self._running

    def start(self):
        """Start background evaluation."""
        with self._state_lock:
            if self._running:
                return
            self._running = True
            self._scheduler.clear()
            self._scheduler.every(self.interval).seconds.do(self._tick_job)
            self._stop_event = threading.Event()
            self._thread = threading.Thread(target=self._run_loop, args=(self._stop_event,),
                                            name="pulsewatch-scheduler", daemon=True)
            self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self, timeout=None):
        """Stop background evaluation. Safe to call more than once.

        An in-flight tick is allowed to finish; nothing new is scheduled.
        """
        with self._state_lock:
            if not self._running and self._thread is None:
                return
            self._running = False
            self._scheduler.clear()
            if self._stop_event is not None:
                self._stop_event.set()
            thread, self._thread = self._thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("Scheduler stopped")

    def _run_loop(self, stop_event):
        # Evaluate once immediately
        self._tick_job()
        while not stop_event.is_set():
            self._scheduler.run_pending()
            stop_event.wait(1)

    def _tick_job(self):
        if not self._running:
            return
        try:
            report = self.run_once()
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Tick failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive evaluation failures!")
            return
        if report is None:
            return
        self._consecutive_failures = 0
        for cb in self._callbacks:
            try:
                cb(report)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

    def run_once(self):
        """Evaluate every evaluable rule once.

        Returns a TickReport, or None when the previous tick is still running.
        Raises only if the rule listing itself fails.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Previous evaluation tick still running, skipping")
            return None
        try:
            rules = self.engine.list_rules()
            report = TickReport()
            if not rules:
                return report

            with ThreadPoolExecutor(max_workers=self.max_workers,
                                    thread_name_prefix="evaluate") as pool:
                outcomes = list(pool.map(self._evaluate_guarded, rules))

            for rule, outcome in zip(rules, outcomes):
                if outcome == "skipped":
                    report.skipped += 1
                elif outcome == "failed":
                    report.failed += 1
                else:
                    report.evaluated += 1
                    report.decisions[rule.id] = outcome
            logger.debug(f"Tick done: {report.evaluated} evaluated, {report.skipped} skipped, "
                         f"{report.failed} failed")
            return report
        finally:
            self._tick_lock.release()

    def _evaluate_guarded(self, rule):
        with self._in_flight_lock:
            if rule.id in self._in_flight:
                logger.debug(f"Alert {rule.id} still being evaluated, skipping")
                return "skipped"
            self._in_flight.add(rule.id)
        try:
            return self.engine.evaluate(rule)
        except Exception as e:
            logger.error(f"Failed to evaluate alert {rule.id} ({rule.name}): {e}")
            return "failed"
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(rule.id)
