"""
core/result_resolver.py
-----------------------
Reconciles the curator's official result with a user's self-reported one.
The official result always wins; a self-report is only accepted once the
execution window has closed and no official result exists.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Dict, Iterable, Optional, Union

from core.exceptions import UserResultRejected
from core.lifecycle import LifecycleStatus, get_lifecycle_state
from models.signal import OfficialResult, Signal, UserOutcome, UserResult

logger = logging.getLogger(__name__)


class ResultSource(str, Enum):
    OFFICIAL = "official"
    SELF_REPORTED = "self_reported"


@dataclass(frozen=True)
class DisplayResult:
    result: Union[OfficialResult, UserOutcome]
    source: ResultSource

    @property
    def authoritative(self) -> bool:
        return self.source is ResultSource.OFFICIAL

    @property
    def is_win(self) -> bool:
        return self.result.value.startswith("win")


def get_display_result(
    signal: Signal, user_result: Optional[UserResult] = None
) -> Optional[DisplayResult]:
    if signal.official_result is not None:
        return DisplayResult(signal.official_result, ResultSource.OFFICIAL)
    if user_result is not None:
        return DisplayResult(user_result.result, ResultSource.SELF_REPORTED)
    return None


def should_prompt_self_report(
    signal: Signal,
    user_result: Optional[UserResult],
    now: datetime,
    *,
    tz: Optional[tzinfo] = None,
) -> bool:
    """True when the UI should ask the user how the trade went."""
    state = get_lifecycle_state(signal, now, tz=tz)
    return state.awaiting_result and get_display_result(signal, user_result) is None


def submit_user_result(
    store,
    signal: Signal,
    user_id: str,
    result: Union[UserOutcome, str],
    now: datetime,
    *,
    tz: Optional[tzinfo] = None,
) -> UserResult:
    """
    Record a self-reported result through ``store.insert_user_result``.

    Raises UserResultRejected while the signal is not awaiting a result
    (too early, or already officially resolved) and DuplicateUserResult
    (from the store) when the user already reported this signal.
    """
    state = get_lifecycle_state(signal, now, tz=tz)
    if state.status is LifecycleStatus.RESOLVED:
        raise UserResultRejected(f"signal {signal.id} already has an official result")
    if state.status is not LifecycleStatus.AWAITING_RESULT:
        raise UserResultRejected(
            f"signal {signal.id} is {state.status.value}; results open after the window closes"
        )

    user_result = UserResult(signal_id=signal.id, user_id=user_id, result=result, created_at=now)
    store.insert_user_result(user_result)
    logger.info("Recorded %s for signal %s by user %s", user_result.result.value, signal.id, user_id)
    return user_result


def _stats(wins: int, losses: int) -> Dict[str, int]:
    total = wins + losses
    win_rate = round(wins / total * 100) if total else 0
    return {"wins": wins, "losses": losses, "total": total, "win_rate": win_rate}


def user_result_stats(results: Iterable[UserResult]) -> Dict[str, int]:
    wins = losses = 0
    for r in results:
        if r.result is UserOutcome.WIN:
            wins += 1
        else:
            losses += 1
    return _stats(wins, losses)


def official_result_stats(signals: Iterable[Signal]) -> Dict[str, int]:
    """Win/loss tally over signals that carry an official result; win1/win2 count as wins."""
    wins = losses = 0
    for s in signals:
        if s.official_result is None:
            continue
        if s.official_result.is_win:
            wins += 1
        else:
            losses += 1
    return _stats(wins, losses)
