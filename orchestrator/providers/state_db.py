"""SQLite store for the only cross-request mutable state: rate-limit windows
and usage counters.

Every read-modify-write runs inside one ``BEGIN IMMEDIATE`` transaction, so
concurrent requests for the same session (double submits) serialize on the
database write lock and each counter is incremented exactly once.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

SCHEMA_SQL = """
-- Fixed-window rate-limit counters, one row per limiter key
CREATE TABLE IF NOT EXISTS rate_limits (
    key TEXT PRIMARY KEY,
    window_start REAL NOT NULL,
    count INTEGER NOT NULL
);

-- Usage counters per tenant, session and action
CREATE TABLE IF NOT EXISTS usage_counters (
    client_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    action TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    last_seen TEXT NOT NULL,
    PRIMARY KEY (client_id, session_id, action)
);

CREATE INDEX IF NOT EXISTS idx_usage_client ON usage_counters(client_id);
"""


class StateDB:
    """Thread-safe SQLite wrapper; calls are expected to run via ``asyncio.to_thread``."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            db_path, isolation_level=None, check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA_SQL)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Exclusive write transaction; commits on success, rolls back on error."""
        if self._conn is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        with self._lock:
            cursor = self._conn.execute(sql, params)
            return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> StateDB:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()
