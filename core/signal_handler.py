from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from models.signal import FeedBatch, Signal
from utils.logger import setup_logger

logger = setup_logger(__name__)

# backend row status -> agent_status; "pending" means the agent has not acted
_STATUS_MAP = {
    "executed": "executed",
    "failed": "failed",
    "pending": None,
    "": None,
}


def parse_feed_signal(row: Dict[str, Any]) -> Optional[Signal]:
    """Map one backend row onto a Signal; invalid rows are logged and dropped."""
    data = dict(row)

    if "official_result" not in data and "result" in data:
        data["official_result"] = data.pop("result")
    if "agent_status" not in data and "status" in data:
        status = data.pop("status")
        key = str(status or "").strip().lower()
        data["agent_status"] = _STATUS_MAP.get(key, key)

    # camelCase variants
    for camel, snake in (
        ("entryTime", "entry_time"),
        ("receivedAt", "received_at"),
        ("officialResult", "official_result"),
        ("agentStatus", "agent_status"),
        ("rawMessage", "raw_message"),
    ):
        if camel in data and snake not in data:
            data[snake] = data.pop(camel)

    if data.get("received_at") in (None, ""):
        data.pop("received_at", None)

    known = Signal.model_fields.keys()
    data = {k: v for k, v in data.items() if k in known}

    try:
        return Signal(**data)
    except ValidationError as ve:
        logger.warning("Signal validation failed for row %s: %s", row.get("id"), ve)
        return None


def parse_feed_signals(rows: Iterable[Dict[str, Any]]) -> List[Signal]:
    signals = []
    for row in rows or []:
        if not isinstance(row, dict):
            logger.warning("Skipping non-object signal row: %r", row)
            continue
        sig = parse_feed_signal(row)
        if sig is not None:
            signals.append(sig)
    return signals


def parse_feed_batch(body: Dict[str, Any]) -> FeedBatch:
    """Build a FeedBatch from a reader response, keeping every valid signal row."""
    signals = parse_feed_signals(body.get("signals") or [])
    return FeedBatch(
        signals_found=int(body.get("signalsFound", body.get("signals_found", len(signals))) or 0),
        results_updated=int(body.get("resultsUpdated", body.get("results_updated", 0)) or 0),
        signals=signals,
    )


def format_signal(sig: Signal) -> str:
    entry = sig.entry_time or "now"
    ts = sig.received_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    return (
        f"#SIGNAL\n"
        f"Asset: {sig.asset}\n"
        f"Direction: {sig.direction.value}\n"
        f"Timeframe: {sig.timeframe}\n"
        f"Entry: {entry}\n"
        f"Received: {ts}"
    )
