"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"
DEFAULT_RULES_PATH = Path(__file__).parent / "alerts_rules.yaml"


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "PULSEWATCH_DB_PATH": ("database", "path"),
        "PULSEWATCH_EVAL_INTERVAL": ("scheduler", "interval_seconds"),
        "PULSEWATCH_LOG_LEVEL": ("logging", "level"),
        "PULSEWATCH_SLACK_WEBHOOK_URL": ("slack", "webhook_url"),
        "PULSEWATCH_WEBHOOK_URL": ("webhook", "url"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def channel_defaults(config):
    """Process-wide per-channel fallbacks used when a rule omits its own."""
    email = config.get("email", {})
    return {
        "email": {"recipients": email.get("default_recipients") or []},
        "slack": dict(config.get("slack", {})),
        "webhook": dict(config.get("webhook", {})),
        "file": dict(config.get("file", {})),
    }


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    required_sections = ["database", "scheduler", "notifications", "logging"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    sched = config["scheduler"]
    if sched["interval_seconds"] < 5:
        raise ValueError("interval_seconds must be >= 5 seconds")
    if sched["max_workers"] < 1:
        raise ValueError("max_workers must be >= 1")
    if sched["staleness_seconds"] <= 0:
        raise ValueError("staleness_seconds must be > 0")
