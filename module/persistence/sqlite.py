"""
persistence/sqlite.py
---------------------
Simple SQLite wrapper for signals, user results, handled result posts and
the execution agent's processed-signal ledger.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from core.exceptions import DuplicateUserResult
from models.signal import AgentStatus, OfficialResult, Signal, UserResult

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS signals (
    id              TEXT PRIMARY KEY,
    asset           TEXT NOT NULL,
    direction       TEXT NOT NULL,
    timeframe       TEXT NOT NULL,
    entry_time      TEXT,
    received_at     TEXT NOT NULL,
    official_result TEXT,
    agent_status    TEXT,
    amount          REAL,
    raw_message     TEXT,
    message_id      TEXT
);
CREATE INDEX IF NOT EXISTS idx_signals_received ON signals (received_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_signals_message ON signals (message_id);

CREATE TABLE IF NOT EXISTS user_results (
    signal_id  TEXT NOT NULL,
    user_id    TEXT NOT NULL,
    result     TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (signal_id, user_id)
);

CREATE TABLE IF NOT EXISTS processed_signals (
    signal_id    TEXT PRIMARY KEY,
    processed_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS result_messages (
    message_id TEXT PRIMARY KEY,
    signal_id  TEXT,
    seen_at    TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


def _row_to_signal(row: sqlite3.Row) -> Signal:
    return Signal(
        id=row["id"],
        asset=row["asset"],
        direction=row["direction"],
        timeframe=row["timeframe"],
        entry_time=row["entry_time"],
        received_at=datetime.fromisoformat(row["received_at"]),
        official_result=row["official_result"],
        agent_status=row["agent_status"],
        amount=row["amount"],
        raw_message=row["raw_message"],
    )


def _row_to_user_result(row: sqlite3.Row) -> UserResult:
    return UserResult(
        signal_id=row["signal_id"],
        user_id=row["user_id"],
        result=row["result"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SQLitePersistence:
    def __init__(self, db_path: str = "data/signals.db"):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self.conn.commit()
        # the agent may call in from a worker thread
        self._lock = threading.Lock()

    def close(self) -> None:
        self.conn.close()

    # ---------------------------- SIGNALS -------------------------------- #
    def upsert_signal(self, signal: Signal, *, message_id: Optional[str] = None) -> None:
        """
        Insert or refresh a signal.  A stored official_result is never
        replaced and NULLs never clear stored result/status values.
        """
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO signals (id, asset, direction, timeframe, entry_time, received_at,
                                     official_result, agent_status, amount, raw_message, message_id)
                VALUES (:id, :asset, :direction, :timeframe, :entry_time, :received_at,
                        :official_result, :agent_status, :amount, :raw_message, :message_id)
                ON CONFLICT(id) DO UPDATE SET
                  official_result = COALESCE(signals.official_result, excluded.official_result),
                  agent_status    = COALESCE(excluded.agent_status, signals.agent_status),
                  amount          = COALESCE(excluded.amount, signals.amount)
                """,
                {
                    "id": signal.id,
                    "asset": signal.asset,
                    "direction": signal.direction.value,
                    "timeframe": signal.timeframe,
                    "entry_time": signal.entry_time,
                    "received_at": signal.received_at.isoformat(),
                    "official_result": signal.official_result.value if signal.official_result else None,
                    "agent_status": signal.agent_status.value if signal.agent_status else None,
                    "amount": signal.amount,
                    "raw_message": signal.raw_message,
                    "message_id": message_id,
                },
            )
            self.conn.commit()

    def get_signal(self, signal_id: str) -> Optional[Signal]:
        row = self.conn.execute("SELECT * FROM signals WHERE id = ?", (signal_id,)).fetchone()
        return _row_to_signal(row) if row else None

    def has_message(self, message_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM signals WHERE message_id = ? LIMIT 1", (message_id,)
        ).fetchone()
        return row is not None

    def list_signals(self, since: Optional[datetime] = None, limit: int = 20) -> List[Signal]:
        # received_at is stored as ISO text, so filtering is done in Python to
        # stay correct across mixed UTC offsets
        rows = self.conn.execute("SELECT * FROM signals").fetchall()
        signals = [_row_to_signal(r) for r in rows]
        if since is not None:
            signals = [s for s in signals if s.received_at >= since]
        signals.sort(key=lambda s: s.received_at, reverse=True)
        return signals[:limit]

    def list_unresolved(self, since: datetime) -> List[Signal]:
        return [s for s in self.list_signals(since=since, limit=1000) if s.official_result is None]

    def set_official_result(self, signal_id: str, result: OfficialResult) -> bool:
        """Write-once; returns False when the signal is unknown or already resolved."""
        with self._lock:
            cur = self.conn.execute(
                "UPDATE signals SET official_result = ? WHERE id = ? AND official_result IS NULL",
                (OfficialResult(result).value, signal_id),
            )
            self.conn.commit()
        return cur.rowcount == 1

    def set_agent_status(self, signal_id: str, status: AgentStatus) -> bool:
        with self._lock:
            cur = self.conn.execute(
                "UPDATE signals SET agent_status = ? WHERE id = ?",
                (AgentStatus(status).value, signal_id),
            )
            self.conn.commit()
        return cur.rowcount == 1

    # ---------------------------- USER RESULTS --------------------------- #
    def insert_user_result(self, result: UserResult) -> None:
        try:
            with self._lock:
                self.conn.execute(
                    """
                    INSERT INTO user_results (signal_id, user_id, result, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (result.signal_id, result.user_id, result.result.value, result.created_at.isoformat()),
                )
                self.conn.commit()
        except sqlite3.IntegrityError:
            raise DuplicateUserResult(result.signal_id, result.user_id) from None

    def get_user_result(self, signal_id: str, user_id: str) -> Optional[UserResult]:
        row = self.conn.execute(
            "SELECT * FROM user_results WHERE signal_id = ? AND user_id = ?",
            (signal_id, user_id),
        ).fetchone()
        return _row_to_user_result(row) if row else None

    def list_user_results(self, user_id: str) -> List[UserResult]:
        rows = self.conn.execute(
            "SELECT * FROM user_results WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_user_result(r) for r in rows]

    # ---------------------------- PROCESSED LEDGER ----------------------- #
    def mark_processed(self, signal_id: str) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT OR IGNORE INTO processed_signals (signal_id) VALUES (?)", (signal_id,)
            )
            self.conn.commit()

    def is_processed(self, signal_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM processed_signals WHERE signal_id = ?", (signal_id,)
        ).fetchone()
        return row is not None

    # ---------------------------- RESULT POSTS --------------------------- #
    def mark_result_message(self, message_id: str, signal_id: Optional[str] = None) -> None:
        """Remember a result post; ``signal_id`` is None when nothing matched."""
        with self._lock:
            self.conn.execute(
                "INSERT OR IGNORE INTO result_messages (message_id, signal_id) VALUES (?, ?)",
                (message_id, signal_id),
            )
            self.conn.commit()

    def has_result_message(self, message_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM result_messages WHERE message_id = ?", (message_id,)
        ).fetchone()
        return row is not None
