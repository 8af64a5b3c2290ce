from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import TelegramError

from models.events import ExecutionReported
from models.execution_outcome import ExecutionOutcome
from models.signal import AgentStatus, Direction
from notifiers.base import BaseNotifier
from notifiers.hub import NotifierHub
from notifiers.telegram import TelegramNotifier
from utils.event_bus import EventBus


def _outcome(status=AgentStatus.EXECUTED, detail=None):
    return ExecutionOutcome(
        signal_id="sig-1",
        asset="EURUSD-OTC",
        direction=Direction.CALL,
        amount=2.0,
        status=status,
        attempted_at=datetime(2024, 1, 1, 9, 55, tzinfo=timezone.utc),
        detail=detail,
    )

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def backend():
    b = MagicMock(spec=BaseNotifier)
    b.send = AsyncMock()
    return b


def test_hub_builds_telegram_from_config():
    with patch("notifiers.hub.TelegramNotifier") as tg:
        hub = NotifierHub({"TELEGRAM": {"token": "t", "chat_id": "42"}})
    tg.assert_called_once_with(token="t", chat_id="42")
    assert hub.backends == [tg.return_value]


def test_hub_without_credentials_has_no_backends():
    assert NotifierHub({"TELEGRAM": {"token": None, "chat_id": None}}).backends == []
    assert NotifierHub({}).backends == []


@pytest.mark.asyncio
async def test_broadcast_survives_failing_backend(backend):
    broken = MagicMock(spec=BaseNotifier)
    broken.send = AsyncMock(side_effect=RuntimeError("boom"))
    hub = NotifierHub({}, backends=[broken, backend])

    await hub.broadcast("hello")

    backend.send.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_execution_report_is_broadcast(backend):
    bus = EventBus()
    hub = NotifierHub({}, backends=[backend])
    hub.attach(bus)

    bus.publish(ExecutionReported.TOPIC, ExecutionReported(outcome=_outcome()))
    await bus.join()

    backend.send.assert_awaited_once()
    assert "Executed CALL on EURUSD-OTC" in backend.send.call_args[0][0]

    hub.detach()
    bus.publish(ExecutionReported.TOPIC, ExecutionReported(outcome=_outcome()))
    await bus.join()
    assert backend.send.await_count == 1


def test_format_failed_outcome():
    text = NotifierHub.format_outcome(_outcome(AgentStatus.FAILED, "control not found"))
    assert text.startswith("❌")
    assert "control not found" in text


@pytest.mark.asyncio
async def test_telegram_send_swallows_api_errors():
    bot = MagicMock()
    bot.send_message = AsyncMock(side_effect=TelegramError("chat not found"))
    notifier = TelegramNotifier(token="t", chat_id="42", bot=bot)

    await notifier.send("hi")

    bot.send_message.assert_awaited_once_with(chat_id="42", text="hi")
