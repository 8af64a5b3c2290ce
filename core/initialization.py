"""
core/initialization.py
----------------------
Loads configuration from .env and wires all runtime components with simple
dependency-injection (DI) overrides.
"""

from __future__ import annotations

import os
import logging
from datetime import timedelta
from typing import Dict, Optional

from dotenv import load_dotenv

from core.execution_matcher import PersistentProcessedSet, ProcessedSet
from module.persistence.sqlite import SQLitePersistence
from modules.channel_reader import ChannelFeedReader
from modules.execution_agent import ExecutionAgent
from modules.execution_target import DryRunTarget, WebhookTarget
from modules.feed_client import HttpFeedReader
from modules.signal_ingestor import SignalIngestor
from notifiers.hub import NotifierHub
from utils.config_manager import ConfigManager
from utils.event_bus import EventBus
from utils.logger import configure_from

_PASSTHROUGH_KEYS = [
    "FEED_KIND",
    "FEED_URL",
    "FEED_API_KEY",
    "CHANNEL_USERNAME",
    "CHANNEL_RSS_BASE",
    "POLL_INTERVAL_SECONDS",
    "FETCH_TIMEOUT_SECONDS",
    "AGENT_ENABLED",
    "AGENT_INTERVAL_SECONDS",
    "TRADE_AMOUNT",
    "EXECUTION_DELAY_SECONDS",
    "EXECUTION_TARGET",
    "EXECUTION_WEBHOOK_URL",
    "SIGNAL_TIMEZONE",
    "RECENT_SIGNAL_HOURS",
    "DB_PATH",
    "DURABLE_DEDUPE",
    "LOG_LEVEL",
    "LOG_FILE",
    "LOG_MAX_MB",
    "LOG_BACKUPS",
]


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a structured config dict.
    Only keys that are actually set are included, so ConfigManager defaults apply.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    conf: Dict[str, object] = {
        key: os.environ[key] for key in _PASSTHROUGH_KEYS if os.environ.get(key, "") != ""
    }
    conf["TELEGRAM"] = {
        "token": os.getenv("TELEGRAM_TOKEN"),
        "chat_id": os.getenv("TELEGRAM_CHAT_ID"),
    }

    log.debug("Parsed config keys: %s", sorted(conf.keys()))
    return conf


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"logger", "bus", "store", "feed", "ingestor", "target", "agent", "notifier"}
    """
    overrides = overrides or {}
    cfg = ConfigManager(config)
    tz = cfg.get_timezone()

    # 1) Logger + bus
    logger = overrides.get("logger") or configure_from(cfg)
    bus = overrides.get("bus") or EventBus()

    # 2) Store
    store = overrides.get("store") or SQLitePersistence(cfg.get_db_path())

    # 3) Feed reader
    feed = overrides.get("feed")
    if feed is None:
        if cfg.get_feed_kind() == "channel":
            feed = ChannelFeedReader(
                cfg.get_channel_username(),
                store,
                rss_base=cfg.get_channel_rss_base(),
                tz=tz,
                logger=logger,
            )
        else:
            feed = HttpFeedReader(cfg.get_feed_url(), cfg.get_feed_api_key(), logger=logger)

    # 4) Ingestor
    ingestor = overrides.get("ingestor") or SignalIngestor(
        feed,
        interval=cfg.get_poll_interval(),
        fetch_timeout=cfg.get_fetch_timeout(),
        bus=bus,
        logger=logger,
    )

    # 5) Execution target + agent
    target = overrides.get("target")
    if target is None:
        if cfg.get_execution_target() == "webhook":
            target = WebhookTarget(cfg.get_webhook_url(), logger=logger)
        else:
            target = DryRunTarget(logger=logger)

    agent = overrides.get("agent")
    if agent is None and cfg.agent_enabled():
        processed = PersistentProcessedSet(store) if cfg.durable_dedupe() else ProcessedSet()
        agent = ExecutionAgent(
            target,
            ingestor.snapshot,
            store=store,
            ingestor=ingestor,
            processed=processed,
            amount=cfg.get_trade_amount(),
            interval=cfg.get_agent_interval(),
            execution_delay=cfg.get_execution_delay(),
            recent_window=timedelta(hours=cfg.get_recent_hours()),
            tz=tz,
            bus=bus,
            logger=logger,
        )

    # 6) Notifications
    notifier = overrides.get("notifier") or NotifierHub(config)
    notifier.attach(bus)

    logger.info("✅ Logger initialized.")
    logger.info("✅ Feed reader initialized: %s", feed.__class__.__name__)
    logger.info("✅ SignalIngestor initialized.")
    if agent is not None:
        logger.info("✅ ExecutionAgent initialized with %s.", target.__class__.__name__)
    else:
        logger.info("ℹ️ ExecutionAgent disabled.")

    return {
        "logger": logger,
        "bus": bus,
        "store": store,
        "feed": feed,
        "ingestor": ingestor,
        "target": target,
        "agent": agent,
        "notifier": notifier,
    }
