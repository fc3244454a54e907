"""Tests for notification channel adapters."""
import pytest
import sys
import os
import json
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import MagicMock
from rich.console import Console
from alerts.channels import (ConsoleChannel, FileChannel, EmailChannel, SlackChannel,
                             WebhookChannel, NotificationChannel)
from models.notifications import (NotificationContext, EmailChannelConfig, ChatChannelConfig,
                                  WebhookChannelConfig, CustomChannelConfig)
from utils.http_client import TransportError
from conftest import T0, make_alert


@pytest.fixture
def context():
    return NotificationContext.for_alert(make_alert(id=3), 88, T0, "Web Frontend")


def test_file_channel_appends_jsonl(tmp_path, context):
    path = tmp_path / "alerts.jsonl"
    channel = FileChannel(str(path))
    channel.send(context, CustomChannelConfig("file"))
    channel.send(context, CustomChannelConfig("file"))
    lines = path.read_text().strip().split("\n")
    assert len(lines) == 2
    entry = json.loads(lines[0])
    assert entry["alert"]["id"] == 3
    assert entry["condition"]["current_value"] == 88.0


def test_file_channel_path_override(tmp_path, context):
    default = tmp_path / "default.jsonl"
    override = tmp_path / "override.jsonl"
    FileChannel(str(default)).send(context, CustomChannelConfig("file", {"log_path": str(override)}))
    assert override.exists()
    assert not default.exists()


def test_file_channel_write_failure_raises(tmp_path, context):
    channel = FileChannel(str(tmp_path / "missing" / "alerts.jsonl"))
    with pytest.raises(TransportError):
        channel.send(context)


def test_console_channel_prints(context):
    console = Console(record=True, width=200)
    ConsoleChannel(console).send(context)
    text = console.export_text()
    assert "[HIGH]" in text
    assert "High CPU" in text
    assert "cpu = 88.00" in text


def test_email_channel_passes_recipients(context):
    sender = MagicMock()
    EmailChannel(sender).send(context, EmailChannelConfig(("a@x.io", "b@x.io")))
    sender.send_alert.assert_called_once_with(context, ["a@x.io", "b@x.io"])


def test_slack_channel_passes_config(context):
    notifier = MagicMock()
    SlackChannel(notifier).send(context, ChatChannelConfig("https://h.test/s", "#ops"))
    notifier.send.assert_called_once_with(context, "https://h.test/s", channel="#ops",
                                          username="Pulsewatch", icon_emoji=":warning:")


def test_webhook_channel_passes_config(context):
    sender = MagicMock()
    WebhookChannel(sender).send(context, WebhookChannelConfig("https://h.test/w", {"A": "1"}, 4))
    sender.send.assert_called_once_with(context, "https://h.test/w", headers={"A": "1"}, timeout=4)


def test_channels_satisfy_protocol():
    for channel in (ConsoleChannel(Console()), FileChannel(), EmailChannel(MagicMock()),
                    SlackChannel(MagicMock()), WebhookChannel(MagicMock())):
        assert isinstance(channel, NotificationChannel)
