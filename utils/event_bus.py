# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A super-light, asyncio-based pub/sub shared by the ingestor, the
execution agent and the notifiers.  Handlers may be plain callables or
coroutine functions; events are delivered in publish order."""
from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Union

_Handler = Callable[[object], Union[Awaitable[None], None]]

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)
        # queue + worker are created lazily on first publish so the bus binds
        # to whichever loop is running at that point
        self._q: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> Callable[[], None]:
        self._subs[topic].append(fn)

        def _unsubscribe() -> None:
            if fn in self._subs.get(topic, []):
                self._subs[topic].remove(fn)

        return _unsubscribe

    def publish(self, topic: str, payload: object) -> None:
        if self._task is None or self._task.done():
            self._q = asyncio.Queue()
            self._task = asyncio.get_running_loop().create_task(self._worker())
        self._q.put_nowait((topic, payload))

    async def join(self) -> None:
        """Wait until every event published so far has reached its handlers."""
        if self._q is not None and self._task is not None and not self._task.done():
            await self._q.join()

    async def close(self) -> None:
        await self.join()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # -------------------------------------------------------------- #
    async def _worker(self) -> None:
        q = self._q
        while True:
            topic, payload = await q.get()
            try:
                for fn in list(self._subs.get(topic, [])):
                    try:
                        res = fn(payload)
                        if asyncio.iscoroutine(res):
                            await res
                    except Exception:  # keep bus alive
                        logger.exception("[event_bus] handler error on %s", topic)
            finally:
                q.task_done()


# singleton – import this where no bus is injected
BUS = EventBus()

# convenience shims so callers don't care about the BUS name
subscribe = BUS.subscribe
publish = BUS.publish
