"""
core/execution_matcher.py
-------------------------
Decides whether the execution agent should act on a signal right now, and
remembers which signals it already acted on.

The action window is looser than the display window: a signal becomes
eligible ten minutes before its entry and stays eligible after it.  The
anchor here is computed without the six-hour rollover correction.
"""
from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Iterator, Optional, Set

from core.lifecycle import compute_anchor
from models.signal import Signal

logger = logging.getLogger(__name__)

EARLY_LIMIT_MINUTES = 10
CATCH_UP_LIMIT_MINUTES = -7


def minutes_until_entry(signal: Signal, now: datetime, *, tz: Optional[tzinfo] = None) -> Optional[float]:
    anchor = compute_anchor(signal, rollover=False, tz=tz)
    if anchor is None:
        return None
    return (anchor - now).total_seconds() / 60.0


def should_execute(signal: Signal, now: datetime, *, tz: Optional[tzinfo] = None) -> bool:
    if signal.entry_time is None:
        return True

    diff = minutes_until_entry(signal, now, tz=tz)
    if diff is None:
        # present but unreadable entry time: do nothing rather than guess
        logger.debug("Unparsable entry time %r on signal %s", signal.entry_time, signal.id)
        return False

    if diff > EARLY_LIMIT_MINUTES:
        return False
    if diff < CATCH_UP_LIMIT_MINUTES:
        logger.debug("Late catch-up for %s (%.1f min past entry)", signal.id, -diff)
    return True  # the -7..10 window and late catch-up both fire


class ProcessedSet:
    """Signal ids the agent already acted on during this run.  Grows only."""

    def __init__(self) -> None:
        self._ids: Set[str] = set()

    def __contains__(self, signal_id: object) -> bool:
        return signal_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(set(self._ids))

    def add(self, signal_id: str) -> None:
        self._ids.add(signal_id)


class PersistentProcessedSet(ProcessedSet):
    """
    ProcessedSet backed by the store's ``processed_signals`` table so dedupe
    survives restarts.  Ids seen in this run are also cached in memory.
    """

    def __init__(self, store) -> None:
        super().__init__()
        self.store = store

    def __contains__(self, signal_id: object) -> bool:
        if super().__contains__(signal_id):
            return True
        if self.store.is_processed(str(signal_id)):
            self._ids.add(str(signal_id))
            return True
        return False

    def add(self, signal_id: str) -> None:
        self.store.mark_processed(signal_id)
        super().add(signal_id)
