"""
core/lifecycle.py
-----------------
Derives which lifecycle state a signal is in from its declared entry time
and the wall clock.  Nothing is stored; every call recomputes from scratch,
so the display layer may call it on every refresh.

The feed only sends a time-of-day.  It is anchored on the calendar day the
signal arrived; when that lands more than six hours after arrival the entry
actually belonged to the previous day's schedule and the anchor is moved
back one day.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Optional

from models.signal import OfficialResult, Signal
from utils.timeframe import parse_entry_time, timeframe_minutes

ROLLOVER_THRESHOLD = timedelta(hours=6)


class LifecycleStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    AWAITING_RESULT = "awaiting_result"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class LifecycleState:
    status: LifecycleStatus
    result: Optional[OfficialResult] = None

    @classmethod
    def resolved(cls, result: OfficialResult) -> "LifecycleState":
        return cls(LifecycleStatus.RESOLVED, result)

    @property
    def awaiting_result(self) -> bool:
        return self.status is LifecycleStatus.AWAITING_RESULT


PENDING = LifecycleState(LifecycleStatus.PENDING)
EXECUTING = LifecycleState(LifecycleStatus.EXECUTING)
AWAITING_RESULT = LifecycleState(LifecycleStatus.AWAITING_RESULT)


def compute_anchor(
    signal: Signal,
    *,
    rollover: bool = True,
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """
    Absolute timestamp of the signal's entry, or None when the entry time is
    missing or unparsable.

    ``tz`` converts ``received_at`` into the zone the feed writes its
    time-of-day in; without it the timestamp's own zone is used.
    """
    entry = parse_entry_time(signal.entry_time)
    if entry is None:
        return None
    base = signal.received_at
    if tz is not None and base.tzinfo is not None:
        base = base.astimezone(tz)
    anchor = base.replace(
        hour=entry.hour, minute=entry.minute, second=entry.second, microsecond=0
    )
    if rollover and anchor - base > ROLLOVER_THRESHOLD:
        anchor -= timedelta(days=1)
    return anchor


def window_end(signal: Signal, anchor: datetime) -> datetime:
    return anchor + timedelta(minutes=timeframe_minutes(signal.timeframe))


def get_lifecycle_state(
    signal: Signal,
    now: datetime,
    *,
    tz: Optional[tzinfo] = None,
) -> LifecycleState:
    if signal.official_result is not None:
        return LifecycleState.resolved(signal.official_result)

    anchor = compute_anchor(signal, rollover=True, tz=tz)
    if anchor is None:
        return PENDING

    if now < anchor:
        return PENDING
    if now <= window_end(signal, anchor):
        return EXECUTING
    return AWAITING_RESULT
