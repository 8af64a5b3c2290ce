# --------------------------------------------------------------------
# models/execution_outcome.py
# One immutable record of what the execution agent did with a signal.
# Shared by ExecutionAgent, the SQLite store and NotifierHub.
# --------------------------------------------------------------------
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.signal import AgentStatus, Direction


@dataclass(frozen=True)
class AttemptResult:
    success: bool
    detail: Optional[str] = None


@dataclass(frozen=True)
class ExecutionOutcome:
    signal_id: str
    asset: str
    direction: Direction
    amount: float
    status: AgentStatus
    attempted_at: datetime
    detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is AgentStatus.EXECUTED
