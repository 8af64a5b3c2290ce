from datetime import datetime, timezone

import pytest

from core.exceptions import DuplicateUserResult, UserResultRejected
from core.result_resolver import (
    ResultSource,
    get_display_result,
    official_result_stats,
    should_prompt_self_report,
    submit_user_result,
    user_result_stats,
)
from models.signal import OfficialResult, UserOutcome, UserResult
from module.persistence.sqlite import SQLitePersistence


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


AFTER_WINDOW = utc(2024, 1, 1, 10, 30)

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def store(tmp_path):
    s = SQLitePersistence(str(tmp_path / "signals.db"))
    yield s
    s.close()


def _user_result(signal_id, result="win", user_id="u1"):
    return UserResult(signal_id=signal_id, user_id=user_id, result=result, created_at=AFTER_WINDOW)

# ------------------------- Display result ------------------------- #

def test_official_result_beats_user_result(make_signal):
    sig = make_signal(official_result="loss")
    shown = get_display_result(sig, _user_result(sig.id, "win"))
    assert shown.result is OfficialResult.LOSS
    assert shown.source is ResultSource.OFFICIAL
    assert shown.authoritative
    assert not shown.is_win


def test_user_result_shown_when_no_official(make_signal):
    sig = make_signal()
    shown = get_display_result(sig, _user_result(sig.id, "win"))
    assert shown.result is UserOutcome.WIN
    assert shown.source is ResultSource.SELF_REPORTED
    assert not shown.authoritative
    assert shown.is_win


def test_nothing_to_show(make_signal):
    assert get_display_result(make_signal(), None) is None


def test_prompt_only_after_window_without_any_result(make_signal):
    sig = make_signal()
    assert not should_prompt_self_report(sig, None, utc(2024, 1, 1, 10, 5))
    assert should_prompt_self_report(sig, None, AFTER_WINDOW)
    assert not should_prompt_self_report(sig, _user_result(sig.id), AFTER_WINDOW)
    assert not should_prompt_self_report(make_signal(official_result="win"), None, AFTER_WINDOW)

# ------------------------- Submission ------------------------- #

def test_submit_after_window(store, make_signal):
    sig = make_signal()
    store.upsert_signal(sig)
    saved = submit_user_result(store, sig, "u1", "win", AFTER_WINDOW)
    assert saved.result is UserOutcome.WIN
    assert store.get_user_result(sig.id, "u1") == saved


def test_submit_rejected_during_window(store, make_signal):
    sig = make_signal()
    with pytest.raises(UserResultRejected):
        submit_user_result(store, sig, "u1", "win", utc(2024, 1, 1, 10, 5))
    assert store.get_user_result(sig.id, "u1") is None


def test_submit_rejected_when_official_exists(store, make_signal):
    sig = make_signal(official_result="win1")
    with pytest.raises(UserResultRejected):
        submit_user_result(store, sig, "u1", "loss", AFTER_WINDOW)


def test_submit_twice_rejected(store, make_signal):
    sig = make_signal()
    submit_user_result(store, sig, "u1", "win", AFTER_WINDOW)
    with pytest.raises(DuplicateUserResult):
        submit_user_result(store, sig, "u1", "loss", AFTER_WINDOW)
    assert store.get_user_result(sig.id, "u1").result is UserOutcome.WIN
    # other users are unaffected
    submit_user_result(store, sig, "u2", "loss", AFTER_WINDOW)

# ------------------------- Stats ------------------------- #

def test_user_result_stats():
    results = [_user_result("a", "win"), _user_result("b", "win"), _user_result("c", "loss")]
    assert user_result_stats(results) == {"wins": 2, "losses": 1, "total": 3, "win_rate": 67}


def test_stats_empty():
    assert user_result_stats([]) == {"wins": 0, "losses": 0, "total": 0, "win_rate": 0}


def test_official_stats_count_martingale_wins(make_signal):
    signals = [
        make_signal(official_result="win"),
        make_signal(official_result="win1"),
        make_signal(official_result="win2"),
        make_signal(official_result="loss"),
        make_signal(),
    ]
    assert official_result_stats(signals) == {"wins": 3, "losses": 1, "total": 4, "win_rate": 75}


def test_user_result_naive_created_at_is_utc():
    result = UserResult(signal_id="sig-1", user_id="u1", result="win", created_at=datetime(2024, 1, 1, 10, 20))
    assert result.created_at.tzinfo is timezone.utc
    assert result.created_at == datetime(2024, 1, 1, 10, 20, tzinfo=timezone.utc)
