from datetime import datetime, timezone

import pytest

from models.signal import Signal


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_signal():
    """Factory for signals received 2024-01-01 09:40 UTC with a 10:00 M15 entry."""
    counter = {"n": 0}

    def _make(**overrides) -> Signal:
        counter["n"] += 1
        data = {
            "id": f"sig-{counter['n']}",
            "asset": "EURUSD-OTC",
            "direction": "CALL",
            "timeframe": "M15",
            "entry_time": "10:00:00",
            "received_at": utc(2024, 1, 1, 9, 40),
        }
        data.update(overrides)
        return Signal(**data)

    return _make
