"""Alert system module."""
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager
from alerts.debounce import DebounceStore, Decision, Phase
from alerts.dispatcher import NotificationDispatcher
from alerts.lifecycle import LifecyclePublisher
from alerts.broadcaster import EventBroadcaster
from alerts.channels import ConsoleChannel, FileChannel, EmailChannel, SlackChannel, WebhookChannel
