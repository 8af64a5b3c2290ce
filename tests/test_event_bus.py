import pytest

from utils.event_bus import EventBus


@pytest.mark.asyncio
async def test_sync_and_async_handlers_receive_in_order():
    bus = EventBus()
    seen = []

    async def async_handler(payload):
        seen.append(("async", payload))

    bus.subscribe("topic", lambda p: seen.append(("sync", p)))
    bus.subscribe("topic", async_handler)

    bus.publish("topic", 1)
    bus.publish("topic", 2)
    await bus.join()

    assert seen == [("sync", 1), ("async", 1), ("sync", 2), ("async", 2)]
    await bus.close()


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_bus():
    bus = EventBus()
    seen = []

    def broken(_):
        raise RuntimeError("boom")

    bus.subscribe("topic", broken)
    bus.subscribe("topic", seen.append)

    bus.publish("topic", "a")
    bus.publish("topic", "b")
    await bus.join()

    assert seen == ["a", "b"]
    await bus.close()


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe("topic", seen.append)

    bus.publish("topic", 1)
    await bus.join()
    unsubscribe()
    unsubscribe()
    bus.publish("topic", 2)
    await bus.join()

    assert seen == [1]
    await bus.close()


@pytest.mark.asyncio
async def test_topics_are_isolated():
    bus = EventBus()
    seen = []
    bus.subscribe("a", seen.append)

    bus.publish("b", "ignored")
    bus.publish("a", "kept")
    await bus.join()

    assert seen == ["kept"]
    await bus.close()
