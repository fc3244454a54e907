"""Latest-sample lookup with staleness checks."""
import logging
from datetime import datetime, timezone

logger = logging.getLogger("pulsewatch.monitor.metrics")

DEFAULT_STALENESS_SECONDS = 600


class StaleDataError(Exception):
    """Latest sample is older than the staleness window."""

    def __init__(self, sample, age_seconds):
        super().__init__(
            f"{sample.metric_type} for project {sample.project_id} is "
            f"{age_seconds:.0f}s old"
        )
        self.sample = sample
        self.age_seconds = age_seconds


class MetricAccessor:
    """Reads the most recent sample for a (project, metric type) pair."""

    def __init__(self, store, staleness_seconds=DEFAULT_STALENESS_SECONDS, clock=None):
        self.store = store
        self.staleness_seconds = staleness_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def latest(self, project_id, metric_type):
        return self.store.get_latest_metric(project_id, metric_type)

    def fresh_sample(self, project_id, metric_type, now=None):
        """Return the latest sample, None if there is none.

        Raises StaleDataError when the sample is older than the window.
        """
        sample = self.latest(project_id, metric_type)
        if sample is None:
            return None
        age = sample.age_seconds(now or self.clock())
        if age > self.staleness_seconds:
            raise StaleDataError(sample, age)
        return sample
