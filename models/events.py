"""
models/events.py
----------------
Typed notifications published on the event bus.  Each event class owns its
topic string, so publishers call ``bus.publish(ev.TOPIC, ev)`` and
subscribers register with ``bus.subscribe(SignalsUpdated.TOPIC, fn)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, FrozenSet, Tuple, Union

from models.execution_outcome import ExecutionOutcome
from models.signal import Signal


@dataclass(frozen=True)
class SignalsUpdated:
    """A tick merged new or changed signals; ``snapshot`` is the whole collection after the merge."""
    TOPIC: ClassVar[str] = "signals_updated"

    snapshot: Tuple[Signal, ...]
    changed_ids: FrozenSet[str]
    signals_found: int = 0
    results_updated: int = 0


@dataclass(frozen=True)
class FetchFailed:
    TOPIC: ClassVar[str] = "fetch_failed"

    error: str
    timed_out: bool = False


@dataclass(frozen=True)
class ExecutionReported:
    TOPIC: ClassVar[str] = "execution_reported"

    outcome: ExecutionOutcome


EngineEvent = Union[SignalsUpdated, FetchFailed, ExecutionReported]
