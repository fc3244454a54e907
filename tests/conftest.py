"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from models.database import Database
from models.alerts import Alert, Condition

T0 = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; call it to read, advance() to move it."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def at(self, seconds):
        self.now = T0 + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    os.unlink(db_path)


@pytest.fixture
def clock():
    return FakeClock()


def make_alert(**overrides):
    """Build a valid rule; any field can be overridden."""
    fields = dict(
        project_id="web",
        name="High CPU",
        metric_type="cpu",
        condition=Condition("greater_than", 80, 60),
        severity="high",
        notification_channels=["console"],
        created_at=T0 - timedelta(days=1),
    )
    fields.update(overrides)
    return Alert(**fields)


@pytest.fixture
def sample_alert():
    return make_alert()
