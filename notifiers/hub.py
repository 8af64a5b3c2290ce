"""
notifiers/hub.py
----------------
Fan-out layer that owns the configured notifier back-ends and turns
execution reports from the event bus into short messages.
"""
from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional

from models.events import ExecutionReported
from models.execution_outcome import ExecutionOutcome
from notifiers.base import BaseNotifier
from notifiers.telegram import TelegramNotifier
from utils.event_bus import EventBus

logger = logging.getLogger(__name__)


class NotifierHub:
    """Collects active back-ends based on config and broadcasts messages."""

    def __init__(self, cfg: Dict, backends: Optional[List[BaseNotifier]] = None) -> None:
        self.backends: List[BaseNotifier] = list(backends or [])
        self._unsubscribe: Optional[Callable[[], None]] = None

        if backends is None:
            tg_cfg = cfg.get("TELEGRAM", {})
            if tg_cfg.get("token") and tg_cfg.get("chat_id"):
                self.backends.append(
                    TelegramNotifier(token=tg_cfg["token"], chat_id=tg_cfg["chat_id"])
                )
            else:
                logger.info("TelegramNotifier disabled – token or chat id missing")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def attach(self, bus: EventBus) -> None:
        """Subscribe to execution reports on ``bus``."""
        self._unsubscribe = bus.subscribe(ExecutionReported.TOPIC, self._on_report)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def broadcast(self, text: str) -> None:
        for backend in self.backends:
            try:
                await backend.send(text)
            except Exception as exc:  # do NOT let one failing back-end break the others
                logger.warning("back-end %s failed: %s", backend.__class__.__name__, exc)

    async def _on_report(self, ev: ExecutionReported) -> None:
        await self.broadcast(self.format_outcome(ev.outcome))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def format_outcome(o: ExecutionOutcome) -> str:
        if o.succeeded:
            return f"✅ Executed {o.direction.value} on {o.asset} – ${o.amount:g}"
        return f"❌ Execution failed on {o.asset} ({o.direction.value}): {o.detail or 'unknown error'}"
