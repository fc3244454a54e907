"""Utility modules for Pulsewatch."""
from utils.logger import setup_logging
from utils.formatters import format_value, format_timestamp, time_ago, severity_color, severity_emoji
from utils.http_client import HTTPClient, TransportError
