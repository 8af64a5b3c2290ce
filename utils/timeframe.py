# utils/timeframe.py
import re
from datetime import time
from typing import Optional

DEFAULT_WINDOW_MINUTES = 1

_TF_RE = re.compile(r"^\s*([MH])(\d+)\s*$", re.IGNORECASE)
_UNIT_MINUTES = {"M": 1, "H": 60}


def normalize_tf(tf: str) -> str:
    """
    Canonical spelling of a feed timeframe ('m15' -> 'M15').
    Unknown spellings are returned stripped and upper-cased.
    """
    return (tf or "").strip().upper()


def timeframe_minutes(tf: Optional[str]) -> int:
    """
    Window length of a timeframe code: 'M15' -> 15, 'H4' -> 240.
    Anything else (None, 'weekly', 'M0', ...) falls back to one minute.
    """
    if not tf:
        return DEFAULT_WINDOW_MINUTES
    m = _TF_RE.match(tf)
    if not m:
        return DEFAULT_WINDOW_MINUTES
    minutes = int(m.group(2)) * _UNIT_MINUTES[m.group(1).upper()]
    return minutes if minutes > 0 else DEFAULT_WINDOW_MINUTES


def parse_entry_time(raw: Optional[str]) -> Optional[time]:
    """
    Parse a time-of-day like '16:15' or '16:15:30'.
    Returns None when the value is missing or lacks a valid hour and minute.
    """
    if raw is None:
        return None
    parts = str(raw).strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hour = int(parts[0])
        minute = int(parts[1])
        second = int(parts[2]) if len(parts) > 2 and parts[2] != "" else 0
    except ValueError:
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
        return None
    return time(hour, minute, second)
