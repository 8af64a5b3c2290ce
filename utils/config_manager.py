from datetime import tzinfo
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from utils.logger import DEFAULT_LOG_FILE


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


class ConfigManager:
    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def get_feed_kind(self) -> str:
        return str(self.config.get("FEED_KIND") or "http").lower()

    def get_feed_url(self) -> str:
        return self.config.get("FEED_URL") or ""

    def get_feed_api_key(self) -> Optional[str]:
        return self.config.get("FEED_API_KEY") or None

    def get_channel_username(self) -> str:
        return self.config.get("CHANNEL_USERNAME") or ""

    def get_channel_rss_base(self) -> str:
        return self.config.get("CHANNEL_RSS_BASE") or "https://rsshub.app/telegram/channel/"

    def get_poll_interval(self) -> float:
        return float(self.config.get("POLL_INTERVAL_SECONDS", 3.0))

    def get_fetch_timeout(self) -> float:
        return float(self.config.get("FETCH_TIMEOUT_SECONDS", 15.0))

    def agent_enabled(self) -> bool:
        return _as_bool(self.config.get("AGENT_ENABLED", False))

    def get_agent_interval(self) -> float:
        return float(self.config.get("AGENT_INTERVAL_SECONDS", 5.0))

    def get_trade_amount(self) -> float:
        return float(self.config.get("TRADE_AMOUNT", 1.0))

    def get_execution_delay(self) -> float:
        return float(self.config.get("EXECUTION_DELAY_SECONDS", 2.0))

    def get_execution_target(self) -> str:
        return str(self.config.get("EXECUTION_TARGET") or "dry_run").lower()

    def get_webhook_url(self) -> str:
        return self.config.get("EXECUTION_WEBHOOK_URL") or ""

    def get_timezone(self) -> Optional[tzinfo]:
        name = self.config.get("SIGNAL_TIMEZONE")
        return ZoneInfo(name) if name else None

    def get_recent_hours(self) -> float:
        return float(self.config.get("RECENT_SIGNAL_HOURS", 12))

    def get_db_path(self) -> str:
        return self.config.get("DB_PATH") or "data/signals.db"

    def durable_dedupe(self) -> bool:
        return _as_bool(self.config.get("DURABLE_DEDUPE", False))

    # ---- logging ---- #
    def get_log_level(self) -> str:
        return str(self.config.get("LOG_LEVEL") or "INFO").upper()

    def get_log_file(self) -> Optional[str]:
        """None turns file logging off (LOG_FILE=none)."""
        value = self.config.get("LOG_FILE") or DEFAULT_LOG_FILE
        return None if str(value).strip().lower() in {"none", "off", "-"} else value

    def get_log_max_mb(self) -> int:
        return max(1, int(float(self.config.get("LOG_MAX_MB", 5))))

    def get_log_backups(self) -> int:
        return int(self.config.get("LOG_BACKUPS", 5))
