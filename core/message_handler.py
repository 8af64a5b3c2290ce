"""
message_handler.py
==================
Parsers for raw channel posts.  A post is either a new signal
(asset / timeframe / entry time / direction) or a result announcement
(win, win1, win2 or loss).  Result posts rarely name the signal they close,
so ``find_best_signal_for_result`` picks the most plausible open signal.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List, Optional

from core.lifecycle import compute_anchor
from models.signal import Direction, OfficialResult, Signal
from utils.logger import setup_logger

logger = setup_logger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------
_ASSET_RE = re.compile(r"💷\s*([A-Z]{3}/[A-Z]{3}|[A-Z]{6,}-OTC|[A-Z]{6})", re.IGNORECASE)
_TIMEFRAME_RE = re.compile(r"💎\s*(M\d+|H\d+)", re.IGNORECASE)
_TIME_RE = re.compile(r"⌚️?\s*(\d{2}:\d{2}:\d{2})")
_CALL_RE = re.compile(r"🔼\s*(call|buy)", re.IGNORECASE)
_PUT_RE = re.compile(r"🔽\s*(put|sell)", re.IGNORECASE)

_FALLBACK_PATTERNS = [
    re.compile(r"([A-Z]{3}/[A-Z]{3})\s+(M\d+|H\d+)\s+(CALL|PUT|BUY|SELL)", re.IGNORECASE),
    re.compile(r"([A-Z]{6}(?:-OTC)?)\s+(M\d+|H\d+)\s+(CALL|PUT|BUY|SELL)", re.IGNORECASE),
    re.compile(r"(GOLD|SILVER|OIL)\s+(M\d+|H\d+)\s+(CALL|PUT|BUY|SELL)", re.IGNORECASE),
]

_WIN_RE = re.compile(r"(✅|✔️|\bwin[12]?\b|\bwon\b|ربح)", re.IGNORECASE)
_LOSS_RE = re.compile(r"(❌|⛔️|\bloss\b|\blose\b|\blost\b|خسارة|خسر)", re.IGNORECASE)
_WIN_LEVEL_PATTERNS = [
    (re.compile(r"win\s*([12])", re.IGNORECASE), {"1": "1", "2": "2"}),
    (re.compile(r"win.*?(¹|²)", re.IGNORECASE), {"¹": "1", "²": "2"}),
    (re.compile(r"win.*?(١|٢)", re.IGNORECASE), {"١": "1", "٢": "2"}),
    (re.compile(r"✅\s*([12])"), {"1": "1", "2": "2"}),
]

RESULT_LOOKBACK = timedelta(hours=2)
RESULT_WINDOW_MINUTES = (0, 30)


@dataclass(frozen=True)
class ParsedSignal:
    asset: str
    timeframe: str
    direction: Direction
    entry_time: Optional[str]
    original_asset: str
    raw_message: str


@dataclass(frozen=True)
class ParsedResult:
    result: OfficialResult
    asset: Optional[str] = None
    timeframe: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _display_asset(asset: str) -> str:
    """'AUDCHF-OTC' -> 'AUD/CHF'."""
    asset = asset.replace("-OTC", "").replace("-otc", "")
    if len(asset) == 6 and "/" not in asset:
        asset = f"{asset[:3]}/{asset[3:]}"
    return asset.upper()


def condensed_asset(asset: str) -> str:
    """'EUR/USD-OTC' -> 'EURUSD'; used to compare assets across formats."""
    return asset.replace("-OTC", "").replace("-otc", "").replace("/", "").upper()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_signal_message(text: str) -> Optional[ParsedSignal]:
    asset_m = _ASSET_RE.search(text)
    tf_m = _TIMEFRAME_RE.search(text)
    call_m = _CALL_RE.search(text)
    put_m = _PUT_RE.search(text)

    if asset_m and tf_m and (call_m or put_m):
        original = asset_m.group(1).upper()
        time_m = _TIME_RE.search(text)
        parsed = ParsedSignal(
            asset=_display_asset(original),
            timeframe=tf_m.group(1).upper(),
            direction=Direction.CALL if call_m else Direction.PUT,
            entry_time=time_m.group(1) if time_m else None,
            original_asset=original,
            raw_message=text,
        )
        logger.debug("Signal extracted: %s", parsed)
        return parsed

    for pattern in _FALLBACK_PATTERNS:
        m = pattern.search(text)
        if m:
            original = m.group(1).upper()
            side = m.group(3).upper()
            return ParsedSignal(
                asset=_display_asset(original),
                timeframe=m.group(2).upper(),
                direction=Direction.CALL if side in ("CALL", "BUY") else Direction.PUT,
                entry_time=None,
                original_asset=original,
                raw_message=text,
            )
    return None


def parse_result_message(text: str) -> Optional[ParsedResult]:
    normalized = re.sub(r"\s+", " ", text).strip()
    has_win = bool(_WIN_RE.search(normalized))
    has_loss = bool(_LOSS_RE.search(normalized))
    if not has_win and not has_loss:
        return None

    result = OfficialResult.LOSS if has_loss else OfficialResult.WIN
    if has_win and not has_loss:
        for pattern, levels in _WIN_LEVEL_PATTERNS:
            m = pattern.search(normalized)
            if m:
                level = levels.get(m.group(1))
                if level == "1":
                    result = OfficialResult.WIN1
                elif level == "2":
                    result = OfficialResult.WIN2
                break

    asset_m = _ASSET_RE.search(normalized)
    tf_m = _TIMEFRAME_RE.search(normalized)
    return ParsedResult(
        result=result,
        asset=_display_asset(asset_m.group(1)) if asset_m else None,
        timeframe=tf_m.group(1).upper() if tf_m else None,
    )


def minutes_since_entry(signal: Signal, now: datetime, *, tz: Optional[tzinfo] = None) -> Optional[float]:
    anchor = compute_anchor(signal, rollover=True, tz=tz)
    if anchor is None:
        return None
    return (now - anchor).total_seconds() / 60.0


def find_best_signal_for_result(
    parsed: ParsedResult,
    signals: Iterable[Signal],
    now: datetime,
    *,
    tz: Optional[tzinfo] = None,
) -> Optional[Signal]:
    """
    Pick the open signal a result post most likely refers to.

    Candidates have no official result, arrived within the last two hours and
    are 0-30 minutes past their entry.  Asset, then timeframe, narrow the set
    when they match anything; the most recently received candidate wins.
    """
    lo, hi = RESULT_WINDOW_MINUTES
    candidates: List[Signal] = []
    for s in signals:
        if s.official_result is not None or s.received_at < now - RESULT_LOOKBACK:
            continue
        mins = minutes_since_entry(s, now, tz=tz)
        if mins is not None and lo <= mins <= hi:
            candidates.append(s)

    if not candidates:
        logger.debug("No candidates in time window for %s", parsed.result.value)
        return None

    if parsed.asset:
        cond = condensed_asset(parsed.asset)
        by_asset = [
            s for s in candidates
            if cond in condensed_asset(s.asset) or condensed_asset(s.asset) in cond
        ]
        if by_asset:
            candidates = by_asset
    if parsed.timeframe:
        by_tf = [s for s in candidates if s.timeframe.upper() == parsed.timeframe.upper()]
        if by_tf:
            candidates = by_tf

    best = max(candidates, key=lambda s: s.received_at)
    logger.info("Result %s matched to %s %s @ %s", parsed.result.value, best.asset, best.timeframe, best.entry_time)
    return best
