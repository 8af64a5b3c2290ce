"""
channel_reader.py
-----------------
Feed reader that scrapes a public signal channel directly: the RSS mirror
first, the channel's public web preview as fallback.  New signal posts are
stored once; result posts are attributed to the best open signal and set
its official result.
"""

from __future__ import annotations

import asyncio
import hashlib
import html
import logging
import re
from datetime import datetime, tzinfo
from email.utils import parsedate_to_datetime
from typing import Callable, Iterable, List, Optional, Tuple

import aiohttp

from core.exceptions import FeedError
from core.message_handler import (
    RESULT_LOOKBACK,
    find_best_signal_for_result,
    parse_result_message,
    parse_signal_message,
)
from models.signal import FeedBatch, Signal
from modules.feed_client import FeedReader
from utils.utils import fetch_with_retry, utcnow

_ITEM_RE = re.compile(r"<item>([\s\S]*?)</item>")
_DESC_RE = re.compile(r"<description><!\[CDATA\[([\s\S]*?)\]\]></description>")
_PUBDATE_RE = re.compile(r"<pubDate>(.*?)</pubDate>")
_WEB_MSG_RE = re.compile(r'<div class="tgme_widget_message_text[^"]*"[^>]*>([\s\S]*?)</div>')
_TAG_RE = re.compile(r"<[^>]*>")

_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def _strip_html(fragment: str) -> str:
    return html.unescape(_TAG_RE.sub(" ", fragment)).strip()


def parse_rss_items(text: str) -> List[Tuple[str, str]]:
    """Return ``(message_id, message_text)`` pairs; the id is the item's publish time in ms."""
    items = []
    for m in _ITEM_RE.finditer(text):
        item = m.group(1)
        desc = _DESC_RE.search(item)
        if not desc:
            continue
        pub = _PUBDATE_RE.search(item)
        message_id = None
        if pub:
            try:
                message_id = str(int(parsedate_to_datetime(pub.group(1)).timestamp() * 1000))
            except (TypeError, ValueError):
                message_id = None
        body = _strip_html(desc.group(1))
        if message_id is None:
            message_id = hashlib.sha256(body.encode()).hexdigest()[:16]
        items.append((message_id, body))
    return items


def parse_web_messages(text: str) -> List[Tuple[str, str]]:
    """Web preview has no stable ids; a hash of the message text stands in."""
    items = []
    for m in _WEB_MSG_RE.finditer(text):
        body = _strip_html(m.group(1))
        items.append((hashlib.sha256(body.encode()).hexdigest()[:16], body))
    return items


class ChannelFeedReader(FeedReader):
    def __init__(
        self,
        channel: str,
        store,
        *,
        rss_base: str = "https://rsshub.app/telegram/channel/",
        web_base: str = "https://t.me/s/",
        session: Optional[aiohttp.ClientSession] = None,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.channel = channel
        self.store = store
        self.rss_url = f"{rss_base.rstrip('/')}/{channel}"
        self.web_url = f"{web_base.rstrip('/')}/{channel}"
        self.tz = tz
        self.clock = clock
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._session = session
        self._owns_session = session is None
        # result post ids handled in this run; the store holds them across restarts
        self._seen_results: set = set()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": _USER_AGENT})
            self._owns_session = True
        return self._session

    async def _read_messages(self) -> List[Tuple[str, str]]:
        session = await self._get_session()
        try:
            resp = await fetch_with_retry(session, "GET", self.rss_url, max_retries=1, timeout=6.0)
            if resp["status"] != 200:
                raise FeedError(f"RSS fetch failed: {resp['status']}")
            return parse_rss_items(resp["text"])
        except (FeedError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.logger.warning("RSS read failed, trying web preview: %s", exc)

        try:
            resp = await fetch_with_retry(session, "GET", self.web_url, max_retries=2, timeout=10.0)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FeedError(f"channel unreachable: {exc}") from exc
        if resp["status"] != 200:
            raise FeedError(f"web preview fetch failed: {resp['status']}")
        return parse_web_messages(resp["text"])

    # -------------------------------------------------------------------- #
    async def fetch_latest(self) -> FeedBatch:
        messages = await self._read_messages()
        return self.process_messages(messages)

    def process_messages(self, messages: Iterable[Tuple[str, str]]) -> FeedBatch:
        now = self.clock()
        new_signals: List[Signal] = []
        updated: List[Signal] = []

        for message_id, text in messages:
            parsed_result = parse_result_message(text)
            if parsed_result is not None:
                if message_id in self._seen_results or self.store.has_result_message(message_id):
                    continue
                self._seen_results.add(message_id)
                open_signals = self.store.list_unresolved(since=now - RESULT_LOOKBACK)
                target = find_best_signal_for_result(parsed_result, open_signals, now, tz=self.tz)
                self.store.mark_result_message(message_id, target.id if target else None)
                if target is None:
                    self.logger.info("No matching signal for result %s", parsed_result.result.value)
                    continue
                if self.store.set_official_result(target.id, parsed_result.result):
                    updated.append(target.model_copy(update={"official_result": parsed_result.result}))
                continue

            parsed = parse_signal_message(text)
            if parsed is None or self.store.has_message(message_id):
                continue
            signal = Signal(
                id=f"{self.channel}-{message_id}",
                asset=parsed.original_asset,
                direction=parsed.direction,
                timeframe=parsed.timeframe,
                entry_time=parsed.entry_time,
                received_at=now,
                raw_message=parsed.raw_message,
            )
            self.store.upsert_signal(signal, message_id=message_id)
            new_signals.append(signal)
            self.logger.info("New signal from channel: %s %s %s", signal.asset, signal.direction.value, signal.entry_time)

        return FeedBatch(
            signals_found=len(new_signals),
            results_updated=len(updated),
            signals=new_signals + updated,
        )

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
