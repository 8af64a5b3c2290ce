import asyncio
import logging

import pytest

from models.events import FetchFailed, SignalsUpdated
from models.signal import AgentStatus, FeedBatch, OfficialResult
from modules.feed_client import FeedReader
from modules.signal_ingestor import SignalIngestor
from utils.event_bus import EventBus


class StaticFeed(FeedReader):
    def __init__(self, batches):
        self.batches = list(batches)
        self.calls = 0

    async def fetch_latest(self):
        self.calls += 1
        if len(self.batches) > 1:
            return self.batches.pop(0)
        return self.batches[0]


class BlockingFeed(FeedReader):
    def __init__(self, batch):
        self.batch = batch
        self.calls = 0
        self.release = asyncio.Event()

    async def fetch_latest(self):
        self.calls += 1
        await self.release.wait()
        return self.batch


class FailingFeed(FeedReader):
    def __init__(self):
        self.calls = 0

    async def fetch_latest(self):
        self.calls += 1
        raise ConnectionError("feed down")

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def events(bus):
    received = []
    bus.subscribe(SignalsUpdated.TOPIC, received.append)
    bus.subscribe(FetchFailed.TOPIC, received.append)
    return received


def _ingestor(feed, bus, **kwargs):
    return SignalIngestor(feed, bus=bus, logger=logging.getLogger("test"), **kwargs)

# ------------------------- Tests ------------------------- #

@pytest.mark.asyncio
async def test_tick_merges_and_notifies(make_signal, bus, events):
    sig = make_signal()
    ingestor = _ingestor(StaticFeed([FeedBatch(signals_found=1, signals=[sig])]), bus)

    assert await ingestor.on_tick() is True
    await bus.join()

    assert ingestor.snapshot() == (sig,)
    assert ingestor.last_poll_result.signals_found == 1
    assert len(events) == 1
    ev = events[0]
    assert isinstance(ev, SignalsUpdated)
    assert ev.snapshot == (sig,)
    assert ev.changed_ids == frozenset({sig.id})


@pytest.mark.asyncio
async def test_unchanged_batch_does_not_notify(make_signal, bus, events):
    sig = make_signal()
    ingestor = _ingestor(StaticFeed([FeedBatch(signals=[sig])]), bus)

    assert await ingestor.on_tick() is True
    assert await ingestor.on_tick() is False
    await bus.join()
    assert len(events) == 1


@pytest.mark.asyncio
async def test_single_flight(make_signal, bus):
    feed = BlockingFeed(FeedBatch(signals=[make_signal()]))
    ingestor = _ingestor(feed, bus)

    first = asyncio.create_task(ingestor.on_tick())
    await asyncio.sleep(0)
    assert ingestor.is_fetching

    assert await ingestor.on_tick() is False
    assert ingestor.metrics["skipped"] == 1

    feed.release.set()
    assert await first is True
    assert feed.calls == 1
    assert not ingestor.is_fetching


@pytest.mark.asyncio
async def test_failed_fetch_keeps_collection(make_signal, bus, events):
    sig = make_signal()
    ingestor = _ingestor(FailingFeed(), bus)
    ingestor.merge([sig])

    assert await ingestor.on_tick() is False
    await bus.join()

    assert ingestor.snapshot() == (sig,)
    assert not ingestor.is_fetching
    assert ingestor.metrics["errors"] == 1
    assert isinstance(events[0], FetchFailed)
    assert "feed down" in events[0].error

    # the loop keeps going
    assert await ingestor.on_tick() is False
    assert ingestor.metrics["errors"] == 2


@pytest.mark.asyncio
async def test_fetch_timeout_releases_guard(make_signal, bus, events):
    feed = BlockingFeed(FeedBatch(signals=[make_signal()]))
    ingestor = _ingestor(feed, bus, fetch_timeout=0.05)

    assert await ingestor.on_tick() is False
    await bus.join()

    assert not ingestor.is_fetching
    assert events[0].timed_out is True
    assert ingestor.snapshot() == ()


@pytest.mark.asyncio
async def test_stop_discards_in_flight_result(make_signal, bus, events):
    feed = BlockingFeed(FeedBatch(signals=[make_signal()]))
    ingestor = _ingestor(feed, bus)

    tick = asyncio.create_task(ingestor.on_tick())
    await asyncio.sleep(0)
    ingestor.stop()
    ingestor.stop()  # idempotent

    feed.release.set()
    assert await tick is False
    await bus.join()
    assert ingestor.snapshot() == ()
    assert events == []


@pytest.mark.asyncio
async def test_timer_polls_until_stopped(make_signal, bus):
    feed = StaticFeed([FeedBatch(signals=[make_signal()])])
    ingestor = _ingestor(feed, bus, interval=0.01)

    ingestor.start()
    assert ingestor.running
    await asyncio.sleep(0.05)
    await ingestor.aclose()
    calls = feed.calls
    assert calls >= 2

    await asyncio.sleep(0.03)
    assert feed.calls == calls
    assert not ingestor.running

# ------------------------- Merge rules ------------------------- #

def test_merge_replaces_changed_fields(make_signal):
    ingestor = _ingestor(StaticFeed([FeedBatch()]), EventBus())
    sig = make_signal()
    ingestor.merge([sig])

    changed = ingestor.merge([sig.model_copy(update={"official_result": OfficialResult.WIN})])
    assert changed == frozenset({sig.id})
    assert ingestor.get(sig.id).official_result is OfficialResult.WIN


def test_merge_never_clears_or_overwrites_official_result(make_signal):
    ingestor = _ingestor(StaticFeed([FeedBatch()]), EventBus())
    sig = make_signal(official_result="loss", agent_status="executed")
    ingestor.merge([sig])

    stale = sig.model_copy(update={"official_result": None, "agent_status": None})
    assert ingestor.merge([stale]) == frozenset()

    conflicting = sig.model_copy(update={"official_result": OfficialResult.WIN})
    assert ingestor.merge([conflicting]) == frozenset()
    stored = ingestor.get(sig.id)
    assert stored.official_result is OfficialResult.LOSS
    assert stored.agent_status is AgentStatus.EXECUTED


def test_snapshot_newest_first(make_signal):
    from datetime import timedelta

    ingestor = _ingestor(StaticFeed([FeedBatch()]), EventBus())
    old = make_signal()
    new = make_signal(received_at=old.received_at + timedelta(minutes=5))
    ingestor.merge([old, new])
    assert [s.id for s in ingestor.snapshot()] == [new.id, old.id]


def test_log_metrics(caplog, bus):
    ingestor = SignalIngestor(StaticFeed([FeedBatch()]), bus=bus)
    ingestor.metrics.update({"ticks": 10, "skipped": 2, "errors": 1, "latencies": [0.1, 0.3]})
    with caplog.at_level(logging.INFO):
        ingestor.log_metrics()
    assert "Ticks: 10" in caplog.text
    assert "Skipped: 2" in caplog.text
    assert "Avg latency" in caplog.text

# ------------------------- Long runs ------------------------- #

class ReparsingFeed(FeedReader):
    """Decodes the same backend body on every fetch, like the HTTP reader."""

    def __init__(self, body):
        self.body = body

    async def fetch_latest(self):
        from core.signal_handler import parse_feed_batch

        return parse_feed_batch(self.body)


@pytest.mark.asyncio
async def test_repeated_row_without_timestamp_is_not_a_change(bus, events):
    row = {"id": "7", "asset": "EURUSD-OTC", "direction": "CALL", "timeframe": "M5", "entryTime": "10:00:00"}
    ingestor = _ingestor(ReparsingFeed({"signals": [row]}), bus)

    assert await ingestor.on_tick() is True
    first_seen = ingestor.get("7").received_at
    await asyncio.sleep(0.01)

    assert await ingestor.on_tick() is False
    await bus.join()
    assert ingestor.get("7").received_at == first_seen
    assert len(events) == 1


def test_merge_keeps_ingested_fields(make_signal):
    from datetime import timedelta

    ingestor = _ingestor(StaticFeed([FeedBatch()]), EventBus())
    sig = make_signal()
    ingestor.merge([sig])

    drifted = sig.model_copy(update={
        "received_at": sig.received_at + timedelta(hours=1),
        "entry_time": "11:00:00",
        "asset": "GBPUSD",
        "agent_status": AgentStatus.FAILED,
    })
    assert ingestor.merge([drifted]) == frozenset({sig.id})

    stored = ingestor.get(sig.id)
    assert stored.received_at == sig.received_at
    assert stored.entry_time == "10:00:00"
    assert stored.asset == "EURUSD-OTC"
    assert stored.agent_status is AgentStatus.FAILED


@pytest.mark.asyncio
async def test_latency_history_is_bounded(make_signal, bus):
    from modules.signal_ingestor import LATENCY_WINDOW

    ingestor = _ingestor(StaticFeed([FeedBatch(signals=[make_signal()])]), bus)
    for _ in range(LATENCY_WINDOW + 25):
        await ingestor.on_tick()

    assert ingestor.metrics["fetches"] == LATENCY_WINDOW + 25
    assert len(ingestor.metrics["latencies"]) == LATENCY_WINDOW
