"""Concurrent multi-channel notification fan-out with per-channel isolation."""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone

from models.alerts import Alert, Condition, ValidationError
from models.notifications import ChannelResult, NotificationContext, resolve_channel_config
from utils.http_client import TransportError

logger = logging.getLogger("pulsewatch.alerts.dispatcher")

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


class NotificationDispatcher:
    """Sends one NotificationContext to every channel a rule is wired to.

    A failing, slow or misconfigured channel never blocks its siblings and
    never makes ``dispatch`` raise; the outcome of each channel is reported
    as a ChannelResult.
    """

    def __init__(self, channels=None, defaults=None, project_names=None,
                 store=None, max_workers=8, timeout=30, clock=None):
        self.channels = dict(channels or {})
        self.defaults = defaults or {}
        self.project_names = project_names
        self.store = store
        self.max_workers = max_workers
        self.timeout = timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def register(self, name, channel):
        self.channels[name] = channel
        logger.debug(f"Registered notification channel: {name}")

    def build_context(self, rule, value, now=None):
        project_name = None
        if self.project_names is not None:
            try:
                project_name = self.project_names(rule.project_id)
            except Exception as e:
                logger.warning(f"Project name lookup failed for {rule.project_id}: {e}")
        return NotificationContext.for_alert(rule, value, now or self.clock(), project_name)

    def dispatch(self, rule, value, now=None):
        context = self.build_context(rule, value, now)
        channels = list(dict.fromkeys(rule.notification_channels))
        results = {}
        jobs = []

        for name in channels:
            adapter = self.channels.get(name)
            if adapter is None:
                logger.warning(f"Alert {rule.id}: unknown notification channel '{name}', skipping")
                results[name] = ChannelResult(name, SKIPPED, "unknown channel")
                continue
            try:
                config = resolve_channel_config(name, rule.notification_config, self.defaults)
            except ValidationError as e:
                logger.error(f"Alert {rule.id}: invalid {name} config: {e}")
                results[name] = ChannelResult(name, FAILED, str(e))
                continue
            if config is None:
                logger.warning(f"Alert {rule.id}: channel '{name}' is not configured, skipping")
                results[name] = ChannelResult(name, SKIPPED, "not configured")
                continue
            jobs.append((name, adapter, config))

        if jobs:
            results.update(self._fan_out(rule, context, jobs))

        ordered = [results[name] for name in channels]
        self._record(rule, ordered)
        return ordered

    def _fan_out(self, rule, context, jobs):
        results = {}
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs)),
                                      thread_name_prefix="notify")
        try:
            futures = {
                executor.submit(self._send_one, rule.id, name, adapter, context, config): name
                for name, adapter, config in jobs
            }
            done, pending = wait(futures, timeout=self.timeout)
            for future in done:
                results[futures[future]] = future.result()
            for future in pending:
                name = futures[future]
                future.cancel()
                logger.error(f"Alert {rule.id}: channel '{name}' timed out after {self.timeout}s")
                results[name] = ChannelResult(name, FAILED, "timed out")
        finally:
            executor.shutdown(wait=False)
        return results

    @staticmethod
    def _send_one(rule_id, name, adapter, context, config):
        try:
            adapter.send(context, config)
            return ChannelResult(name, SENT)
        except TransportError as e:
            logger.error(f"Alert {rule_id}: {name} notification failed: {e}")
            return ChannelResult(name, FAILED, str(e))
        except Exception as e:
            logger.error(f"Alert {rule_id}: {name} notification raised {type(e).__name__}: {e}")
            return ChannelResult(name, FAILED, str(e))

    def _record(self, rule, results):
        if self.store is None or rule.id is None:
            return
        for r in results:
            try:
                self.store.save_notification_result(rule.id, r.channel, r.status, r.error)
            except Exception as e:
                logger.warning(f"Could not record {r.channel} result for alert {rule.id}: {e}")

    def send_test(self, channel, config=None) -> bool:
        """Send a canned alert through one channel. Returns True on delivery."""
        test_alert = Alert(
            project_id="test-project",
            name="Test Alert",
            description="This is a test notification",
            metric_type="cpu_usage",
            condition=Condition("greater_than", 80, 60),
            severity="info",
            notification_channels=[channel],
            notification_config={channel: dict(config or {})},
        )
        adapter = self.channels.get(channel)
        if adapter is None:
            logger.error(f"Unknown notification channel: {channel}")
            return False
        try:
            resolved = resolve_channel_config(channel, test_alert.notification_config, self.defaults)
        except ValidationError as e:
            logger.error(f"Test notification config invalid for {channel}: {e}")
            return False
        if resolved is None:
            logger.error(f"Test notification for {channel} needs a recipient or URL")
            return False

        context = NotificationContext.for_alert(test_alert, 85, self.clock(), "Test Project")
        result = self._send_one("test", channel, adapter, context, resolved)
        return result.ok
