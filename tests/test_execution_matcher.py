import logging
from datetime import datetime, timezone

import pytest

from core.execution_matcher import (
    PersistentProcessedSet,
    ProcessedSet,
    minutes_until_entry,
    should_execute,
)
from module.persistence.sqlite import SQLitePersistence


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "now, expected",
    [
        (utc(2024, 1, 1, 9, 48), False),  # 12 minutes early
        (utc(2024, 1, 1, 9, 50), True),   # exactly 10 minutes early
        (utc(2024, 1, 1, 9, 52), True),
        (utc(2024, 1, 1, 10, 0), True),
        (utc(2024, 1, 1, 10, 5), True),
        (utc(2024, 1, 1, 10, 8), True),   # late catch-up
        (utc(2024, 1, 1, 11, 0), True),
    ],
)
def test_should_execute_window(make_signal, now, expected):
    assert should_execute(make_signal(), now) is expected


def test_minutes_until_entry(make_signal):
    assert minutes_until_entry(make_signal(), utc(2024, 1, 1, 9, 52)) == pytest.approx(8)
    assert minutes_until_entry(make_signal(), utc(2024, 1, 1, 10, 8)) == pytest.approx(-8)


def test_no_entry_time_always_eligible(make_signal):
    sig = make_signal(entry_time=None)
    assert should_execute(sig, utc(2020, 1, 1))
    assert should_execute(sig, utc(2030, 1, 1))


def test_unparsable_entry_time_not_eligible(make_signal):
    assert not should_execute(make_signal(entry_time="soon"), utc(2024, 1, 1, 10, 0))


def test_late_catch_up_is_logged(make_signal, caplog):
    with caplog.at_level(logging.DEBUG, logger="core.execution_matcher"):
        assert should_execute(make_signal(), utc(2024, 1, 1, 10, 8))
        assert should_execute(make_signal(), utc(2024, 1, 1, 10, 5))
    assert len([r for r in caplog.records if "Late catch-up" in r.getMessage()]) == 1


def test_matcher_skips_rollover(make_signal):
    # the display path would move this anchor to the previous day
    sig = make_signal(received_at=utc(2024, 1, 1, 0, 10), entry_time="08:00:00")
    assert not should_execute(sig, utc(2024, 1, 1, 7, 40))
    assert should_execute(sig, utc(2024, 1, 1, 7, 55))

# ------------------------- ProcessedSet ------------------------- #

def test_processed_set_grows_only():
    processed = ProcessedSet()
    assert "a" not in processed
    processed.add("a")
    processed.add("a")
    processed.add("b")
    assert "a" in processed and "b" in processed
    assert len(processed) == 2
    assert not hasattr(processed, "remove")
    assert not hasattr(processed, "discard")


def test_persistent_processed_set_survives_restart(tmp_path):
    db = str(tmp_path / "signals.db")
    store = SQLitePersistence(db)
    PersistentProcessedSet(store).add("sig-1")
    store.close()

    reopened = SQLitePersistence(db)
    processed = PersistentProcessedSet(reopened)
    assert "sig-1" in processed
    assert "sig-2" not in processed
    reopened.close()
