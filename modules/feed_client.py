"""
feed_client.py
--------------
Feed readers consumed by SignalIngestor.  Every reader exposes one
coroutine, ``fetch_latest() -> FeedBatch``, that is safe to call repeatedly.
``HttpFeedReader`` calls the managed backend's reader endpoint.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, Optional

import aiohttp

from core.exceptions import FeedError
from core.signal_handler import parse_feed_batch
from models.signal import FeedBatch

LATENCY_WINDOW = 1000


class FeedReader(ABC):
    """Upstream source of signals."""

    @abstractmethod
    async def fetch_latest(self) -> FeedBatch:
        """Return whatever the source has new or updated since it was last asked."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HttpFeedReader(FeedReader):
    """POSTs to the reader endpoint and decodes ``{signalsFound, resultsUpdated, signals}``."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._session = session
        self._owns_session = session is None

        self.metrics = {
            "requests_sent": 0,
            "errors": 0,
            "latencies": deque(maxlen=LATENCY_WINDOW),
        }

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    # -------------------------------------------------------------------- #
    async def fetch_latest(self) -> FeedBatch:
        session = await self._get_session()
        t0 = time.time()
        try:
            async with session.post(
                self.url,
                headers=self._headers(),
                json={},
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                self.metrics["requests_sent"] += 1
                if resp.status != 200:
                    raise FeedError(f"HTTP {resp.status} from feed reader")
                body = await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            self.metrics["errors"] += 1
            raise FeedError(f"feed request failed: {exc}") from exc
        except (json.JSONDecodeError, ValueError) as exc:
            self.metrics["errors"] += 1
            raise FeedError(f"feed returned malformed JSON: {exc}") from exc
        except FeedError:
            self.metrics["errors"] += 1
            raise
        self.metrics["latencies"].append(time.time() - t0)

        if not isinstance(body, dict):
            raise FeedError(f"feed returned {type(body).__name__}, expected object")
        if body.get("success") is False:
            raise FeedError(body.get("error") or "feed reader reported failure")

        batch = parse_feed_batch(body)
        self.logger.debug(
            "Feed batch: %s found, %s results updated, %s signals",
            batch.signals_found, batch.results_updated, len(batch.signals),
        )
        return batch

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
