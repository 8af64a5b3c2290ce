"""
signal_ingestor.py
------------------
Polls a feed reader on a fixed period, merges what it returns into the
local signal collection and announces changes on the event bus.

At most one fetch is in flight at a time: a tick that fires while the
previous fetch is still running is skipped, never queued.  Stopping cancels
the timer only; a fetch already in flight runs to completion and its result
is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections import deque
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

from models.events import FetchFailed, SignalsUpdated
from models.signal import Signal
from modules.feed_client import FeedReader
from utils.event_bus import BUS, EventBus

# latencies kept for the rolling average
LATENCY_WINDOW = 1000


@dataclass(frozen=True)
class PollResult:
    signals_found: int = 0
    results_updated: int = 0


class SignalIngestor:
    """Single-flight poller that owns the live signal collection."""

    def __init__(
        self,
        feed: FeedReader,
        *,
        interval: float = 3.0,
        fetch_timeout: Optional[float] = 15.0,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.feed = feed
        self.interval = interval
        self.fetch_timeout = fetch_timeout
        self.bus = bus or BUS

        self._is_fetching = False
        self._stopped = False
        self._signals: Dict[str, Signal] = {}
        self._snapshot: Tuple[Signal, ...] = ()
        self.last_poll_result = PollResult()

        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

        # metrics
        self.metrics = {
            "ticks": 0,
            "skipped": 0,
            "fetches": 0,
            "errors": 0,
            "latencies": deque(maxlen=LATENCY_WINDOW),
        }

    # -------------------------------------------------------------------- #
    # Collection
    # -------------------------------------------------------------------- #
    @property
    def is_fetching(self) -> bool:
        return self._is_fetching

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def snapshot(self) -> Tuple[Signal, ...]:
        """Consistent view of the collection, newest first."""
        return self._snapshot

    def get(self, signal_id: str) -> Optional[Signal]:
        return self._signals.get(signal_id)

    def _merge_one(self, current: Optional[Signal], incoming: Signal) -> Optional[Signal]:
        """Return the signal to store, or None when nothing changed.

        A known signal keeps what it was ingested with; only the official
        result, the agent status and the amount are taken from the feed.
        """
        if current is None:
            return incoming

        update = {}
        if incoming.official_result is not None:
            if current.official_result is None:
                update["official_result"] = incoming.official_result
            elif incoming.official_result != current.official_result:
                self.logger.warning(
                    "Ignoring official result %s for %s: already %s",
                    incoming.official_result.value, current.id, current.official_result.value,
                )
        if incoming.agent_status is not None and incoming.agent_status != current.agent_status:
            update["agent_status"] = incoming.agent_status
        if incoming.amount is not None and incoming.amount != current.amount:
            update["amount"] = incoming.amount

        return current.model_copy(update=update) if update else None

    def merge(self, signals: Iterable[Signal]) -> FrozenSet[str]:
        """Merge by id and return the ids that changed."""
        staged = dict(self._signals)
        changed = set()
        for sig in signals:
            merged = self._merge_one(staged.get(sig.id), sig)
            if merged is not None:
                staged[sig.id] = merged
                changed.add(sig.id)
        if changed:
            # swap in one step so readers never see a half-merged batch
            self._signals = staged
            self._snapshot = tuple(
                sorted(staged.values(), key=lambda s: s.received_at, reverse=True)
            )
        return frozenset(changed)

    def _notify(self, changed: FrozenSet[str], poll: PollResult) -> None:
        ev = SignalsUpdated(
            snapshot=self._snapshot,
            changed_ids=changed,
            signals_found=poll.signals_found,
            results_updated=poll.results_updated,
        )
        self.bus.publish(ev.TOPIC, ev)

    def apply(self, signals: Iterable[Signal]) -> FrozenSet[str]:
        """Merge signals coming from outside a tick (e.g. agent reports) and notify."""
        changed = self.merge(signals)
        if changed:
            self._notify(changed, PollResult())
        return changed

    # -------------------------------------------------------------------- #
    # Tick
    # -------------------------------------------------------------------- #
    async def _fetch(self):
        if self.fetch_timeout is None:
            return await self.feed.fetch_latest()
        return await asyncio.wait_for(self.feed.fetch_latest(), timeout=self.fetch_timeout)

    async def on_tick(self) -> bool:
        """Run one guarded fetch-merge-notify cycle.  Returns True when something changed."""
        self.metrics["ticks"] += 1
        if self._is_fetching:
            self.metrics["skipped"] += 1
            self.logger.debug("Fetch still in flight – skipping tick")
            return False

        self._is_fetching = True
        t0 = time.time()
        try:
            self.metrics["fetches"] += 1
            batch = await self._fetch()
        except asyncio.TimeoutError:
            self.metrics["errors"] += 1
            self.logger.warning("Feed fetch timed out after %ss", self.fetch_timeout)
            ev = FetchFailed(error=f"timed out after {self.fetch_timeout}s", timed_out=True)
            self.bus.publish(ev.TOPIC, ev)
            return False
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.metrics["errors"] += 1
            self.logger.warning("Feed fetch failed: %s", exc)
            ev = FetchFailed(error=str(exc))
            self.bus.publish(ev.TOPIC, ev)
            return False
        finally:
            self._is_fetching = False
        self.metrics["latencies"].append(time.time() - t0)

        if self._stopped:
            self.logger.debug("Ingestor stopped during fetch – discarding batch")
            return False

        self.last_poll_result = PollResult(batch.signals_found, batch.results_updated)
        changed = self.merge(batch.signals)
        if not changed:
            return False
        self.logger.info(
            "📥 %s signal(s) changed (%s found, %s results updated)",
            len(changed), batch.signals_found, batch.results_updated,
        )
        self._notify(changed, self.last_poll_result)
        return True

    # -------------------------------------------------------------------- #
    # Timer
    # -------------------------------------------------------------------- #
    def _spawn_tick(self) -> None:
        task = asyncio.get_running_loop().create_task(self.on_tick())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _timer_loop(self) -> None:
        while not self._stopped:
            self._spawn_tick()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._timer = asyncio.get_running_loop().create_task(self._timer_loop())
        self.logger.info("✅ SignalIngestor started – polling every %ss", self.interval)

    def stop(self) -> None:
        """Idempotent.  Prevents new ticks; an in-flight fetch is left to finish."""
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self.logger.info("SignalIngestor stopped")

    async def aclose(self) -> None:
        self.stop()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def run(self) -> None:
        """Poll until cancelled."""
        self.start()
        try:
            while True:
                await asyncio.sleep(60)
                self.log_metrics()
        except asyncio.CancelledError:
            self.logger.info("Polling loop cancelled – shutting down")
            await self.aclose()
            raise

    def log_metrics(self) -> None:
        avg = statistics.mean(self.metrics["latencies"]) if self.metrics["latencies"] else 0
        self.logger.info(
            "📊 Ticks: %s | Skipped: %s | Errors: %s | Avg latency: %.3fs",
            self.metrics["ticks"],
            self.metrics["skipped"],
            self.metrics["errors"],
            avg,
        )
