from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Direction(str, Enum):
    CALL = "CALL"
    PUT = "PUT"


_DIRECTION_ALIASES = {
    "CALL": Direction.CALL,
    "BUY": Direction.CALL,
    "PUT": Direction.PUT,
    "SELL": Direction.PUT,
}


class OfficialResult(str, Enum):
    WIN = "win"
    WIN1 = "win1"
    WIN2 = "win2"
    LOSS = "loss"

    @property
    def is_win(self) -> bool:
        return self is not OfficialResult.LOSS


class UserOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"


class AgentStatus(str, Enum):
    EXECUTED = "executed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _assume_utc(v: datetime) -> datetime:
    # feeds sometimes drop the offset; naive timestamps are UTC
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class Signal(BaseModel):
    """One ingested trading call.  Instances are immutable; updates replace them."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    direction: Direction
    timeframe: str = "M1"
    # raw time-of-day as sent by the feed; parsed lazily so bad values never raise
    entry_time: Optional[str] = None
    received_at: datetime = Field(default_factory=_utcnow)
    official_result: Optional[OfficialResult] = None
    agent_status: Optional[AgentStatus] = None
    amount: Optional[float] = Field(default=None, gt=0)
    raw_message: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v):
        if isinstance(v, Direction):
            return v
        key = str(v or "").strip().upper()
        if key not in _DIRECTION_ALIASES:
            raise ValueError(f"unknown direction {v!r}")
        return _DIRECTION_ALIASES[key]

    @field_validator("official_result", "agent_status", mode="before")
    @classmethod
    def lower_enum(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    @field_validator("received_at")
    @classmethod
    def aware_received_at(cls, v):
        return _assume_utc(v)

    @field_validator("entry_time", mode="before")
    @classmethod
    def blank_entry_time(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class UserResult(BaseModel):
    """A self-reported outcome; at most one per (signal_id, user_id)."""

    model_config = ConfigDict(frozen=True)

    signal_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    result: UserOutcome
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("result", mode="before")
    @classmethod
    def lower_result(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("created_at")
    @classmethod
    def aware_created_at(cls, v):
        return _assume_utc(v)


class FeedBatch(BaseModel):
    """What one call to a feed reader returns."""

    model_config = ConfigDict(populate_by_name=True)

    signals_found: int = Field(default=0, ge=0, alias="signalsFound")
    results_updated: int = Field(default=0, ge=0, alias="resultsUpdated")
    signals: List[Signal] = Field(default_factory=list)
