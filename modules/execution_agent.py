"""
execution_agent.py
------------------
Autonomous loop that acts on signals.  Each tick it looks at the latest
collection, picks signals it has not processed yet whose action window is
open, and makes exactly one attempt per signal through the execution
target.  Success or failure, the signal is marked processed and its
agent status reported back; nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Iterable, List, Optional

from core.execution_matcher import ProcessedSet, should_execute
from models.events import ExecutionReported
from models.execution_outcome import AttemptResult, ExecutionOutcome
from models.signal import AgentStatus, Signal
from modules.execution_target import ExecutionTarget
from utils.event_bus import BUS, EventBus
from utils.utils import utcnow


class ExecutionAgent:
    def __init__(
        self,
        target: ExecutionTarget,
        source: Callable[[], Iterable[Signal]],
        *,
        store=None,
        ingestor=None,
        processed: Optional[ProcessedSet] = None,
        amount: float = 1.0,
        interval: float = 5.0,
        execution_delay: float = 2.0,
        recent_window: Optional[timedelta] = timedelta(hours=12),
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utcnow,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.target = target
        self.source = source
        self.store = store
        self.ingestor = ingestor
        self.processed = processed if processed is not None else ProcessedSet()
        self.amount = amount
        self.interval = interval
        self.execution_delay = execution_delay
        self.recent_window = recent_window
        self.tz = tz
        self.clock = clock
        self.bus = bus or BUS
        self._task: Optional[asyncio.Task] = None

        self.metrics = {"ticks": 0, "executed": 0, "failed": 0}

    # -------------------------------------------------------------------- #
    def candidates(self, signals: Iterable[Signal], now: datetime) -> List[Signal]:
        """Unprocessed, recent signals the agent has not reported on yet, oldest first."""
        out = []
        for s in signals:
            if s.id in self.processed or s.agent_status is not None:
                continue
            if self.recent_window is not None and s.received_at < now - self.recent_window:
                continue
            out.append(s)
        out.sort(key=lambda s: s.received_at)
        return out

    async def _attempt(self, signal: Signal, amount: float) -> AttemptResult:
        try:
            return await self.target.attempt(signal, amount)
        except Exception as exc:
            self.logger.exception("Execution target raised for %s", signal.id)
            return AttemptResult(success=False, detail=str(exc) or exc.__class__.__name__)

    def _report(self, signal: Signal, outcome: ExecutionOutcome) -> None:
        if self.store is not None:
            try:
                self.store.set_agent_status(signal.id, outcome.status)
            except Exception:
                self.logger.exception("Could not persist agent status for %s", signal.id)
        if self.ingestor is not None:
            self.ingestor.apply([signal.model_copy(update={"agent_status": outcome.status})])
        ev = ExecutionReported(outcome=outcome)
        self.bus.publish(ev.TOPIC, ev)

    async def execute(self, signal: Signal) -> ExecutionOutcome:
        amount = signal.amount or self.amount
        self.logger.info("🚀 Executing %s %s (%s) x %.2f", signal.asset, signal.direction.value, signal.id, amount)
        result = await self._attempt(signal, amount)
        # one attempt only, whatever happened
        self.processed.add(signal.id)

        status = AgentStatus.EXECUTED if result.success else AgentStatus.FAILED
        outcome = ExecutionOutcome(
            signal_id=signal.id,
            asset=signal.asset,
            direction=signal.direction,
            amount=amount,
            status=status,
            attempted_at=self.clock(),
            detail=result.detail,
        )
        if result.success:
            self.metrics["executed"] += 1
            self.logger.info("✅ Executed %s %s", signal.direction.value, signal.asset)
        else:
            self.metrics["failed"] += 1
            self.logger.warning("❌ Execution failed for %s: %s", signal.id, result.detail)
        self._report(signal, outcome)
        return outcome

    async def run_once(self, signals: Optional[Iterable[Signal]] = None) -> List[ExecutionOutcome]:
        self.metrics["ticks"] += 1
        now = self.clock()
        batch = list(self.source() if signals is None else signals)
        outcomes = []
        for sig in self.candidates(batch, now):
            if sig.id in self.processed:
                continue
            if not should_execute(sig, now, tz=self.tz):
                continue
            if outcomes and self.execution_delay:
                await asyncio.sleep(self.execution_delay)
            outcomes.append(await self.execute(sig))
            now = self.clock()
        if outcomes:
            self.logger.info("🎉 %s signal(s) actioned this tick", len(outcomes))
        return outcomes

    # -------------------------------------------------------------------- #
    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception("Execution tick failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        self.logger.info("🤖 ExecutionAgent started – amount %.2f, every %ss", self.amount, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("ExecutionAgent stopped (%s processed)", len(self.processed))
