from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import ConfigError

_POSITIVE_NUMBERS = [
    "POLL_INTERVAL_SECONDS",
    "FETCH_TIMEOUT_SECONDS",
    "AGENT_INTERVAL_SECONDS",
    "TRADE_AMOUNT",
    "RECENT_SIGNAL_HOURS",
    "LOG_MAX_MB",
]

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def validate_config(config: dict):
    kind = str(config.get("FEED_KIND") or "http").lower()
    if kind not in {"http", "channel"}:
        raise ConfigError(f"FEED_KIND must be 'http' or 'channel', got {kind!r}")
    if kind == "http" and not config.get("FEED_URL"):
        raise ConfigError("FEED_URL is required when FEED_KIND=http")
    if kind == "channel" and not config.get("CHANNEL_USERNAME"):
        raise ConfigError("CHANNEL_USERNAME is required when FEED_KIND=channel")

    for key in _POSITIVE_NUMBERS:
        if key not in config:
            continue
        try:
            value = float(config[key])
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be a number, got {config[key]!r}")
        if value <= 0:
            raise ConfigError(f"{key} must be positive.")

    if float(config.get("EXECUTION_DELAY_SECONDS", 0) or 0) < 0:
        raise ConfigError("EXECUTION_DELAY_SECONDS must not be negative.")

    target = str(config.get("EXECUTION_TARGET") or "dry_run").lower()
    if target not in {"dry_run", "webhook"}:
        raise ConfigError(f"EXECUTION_TARGET must be 'dry_run' or 'webhook', got {target!r}")
    if target == "webhook" and not config.get("EXECUTION_WEBHOOK_URL"):
        raise ConfigError("EXECUTION_WEBHOOK_URL is required when EXECUTION_TARGET=webhook")

    tz_name = config.get("SIGNAL_TIMEZONE")
    if tz_name:
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigError(f"Unknown SIGNAL_TIMEZONE {tz_name!r}")

    level = config.get("LOG_LEVEL")
    if level and str(level).strip().upper() not in _LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    if "LOG_BACKUPS" in config:
        try:
            backups = int(config["LOG_BACKUPS"])
        except (TypeError, ValueError):
            raise ConfigError(f"LOG_BACKUPS must be an integer, got {config['LOG_BACKUPS']!r}")
        if backups < 0:
            raise ConfigError("LOG_BACKUPS must not be negative.")
