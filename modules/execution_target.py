# modules/execution_target.py
"""
The surface the execution agent drives.  How a trade is actually placed
(UI automation, an order API, a webhook) is up to the implementation; the
agent only sees ``attempt(signal, amount) -> AttemptResult``.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from core.signal_handler import format_signal
from models.execution_outcome import AttemptResult
from models.signal import Signal


class ExecutionTarget(ABC):
    """Every concrete target must implement attempt()."""

    @abstractmethod
    async def attempt(self, signal: Signal, amount: float) -> AttemptResult:
        """Try to place the trade once.  Must not retry."""
        raise NotImplementedError


class DryRunTarget(ExecutionTarget):
    """Logs what would be traded and reports success."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    async def attempt(self, signal: Signal, amount: float) -> AttemptResult:
        self.logger.info("[DRY RUN] %s x %.2f\n%s", signal.direction.value, amount, format_signal(signal))
        return AttemptResult(success=True, detail="dry run")


class WebhookTarget(ExecutionTarget):
    """POSTs the trade to an automation endpoint (e.g. a browser bridge)."""

    def __init__(
        self,
        url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def _post(self, payload: dict) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)

    async def attempt(self, signal: Signal, amount: float) -> AttemptResult:
        payload = {
            "signal_id": signal.id,
            "asset": signal.asset,
            "direction": signal.direction.value,
            "amount": amount,
            "timeframe": signal.timeframe,
        }
        try:
            resp = await asyncio.to_thread(self._post, payload)
        except requests.RequestException as exc:
            self.logger.warning("Webhook request failed for %s: %s", signal.id, exc)
            return AttemptResult(success=False, detail=f"request failed: {exc}")

        self.logger.debug("WEBHOOK POST %s %s -> %s", self.url, payload, resp.status_code)
        if not 200 <= resp.status_code < 300:
            return AttemptResult(success=False, detail=f"HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if isinstance(data, dict) and data.get("success") is False:
            return AttemptResult(success=False, detail=data.get("error") or "control not found")
        return AttemptResult(success=True, detail=(data.get("detail") if isinstance(data, dict) else None))
