"""Formatting utilities for display and notification bodies."""
from datetime import datetime, timezone

SEVERITY_COLORS = {
    "critical": "#FF0000",
    "high": "#FF6B00",
    "warning": "#FF6B00",
    "medium": "#FFA500",
    "low": "#FFD700",
    "info": "#00BFFF",
}

SEVERITY_EMOJI = {
    "critical": "\U0001f6a8",
    "high": "⚠️",
    "warning": "⚠️",
    "medium": "⚡",
    "low": "\U0001f4ca",
    "info": "ℹ️",
}

# rich markup styles for terminal output
SEVERITY_STYLES = {
    "critical": "bold white on red",
    "high": "bold red",
    "warning": "bold red",
    "medium": "bold yellow",
    "low": "yellow",
    "info": "bold blue",
}


def _sev(severity):
    return (severity.value if hasattr(severity, "value") else str(severity)).lower()


def severity_color(severity):
    return SEVERITY_COLORS.get(_sev(severity), "#808080")


def severity_emoji(severity):
    return SEVERITY_EMOJI.get(_sev(severity), "\U0001f4cc")


def severity_style(severity):
    return SEVERITY_STYLES.get(_sev(severity), "")


def format_value(value, decimals=2):
    """Format a metric value with fixed decimals."""
    if value is None:
        return "N/A"
    return f"{float(value):.{decimals}f}"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%d %H:%M:%S UTC")


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = int((now - dt).total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
