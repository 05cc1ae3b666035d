"""Replay protection for platform webhook deliveries.

Platforms redeliver a message when an acknowledgement is slow or lost. Each
platform message id is recorded once; a repeat is acknowledged by the caller
but never run through the pipeline a second time.

Uses SQLite for persistence across restarts.
"""

from __future__ import annotations

import sqlite3
import threading
import time


class ReplayProtection:
    """Remembers processed platform message ids using SQLite-backed state."""

    def __init__(self, db_path: str, retention_seconds: int = 86_400) -> None:
        self._db_path = db_path
        self._retention_seconds = retention_seconds
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS seen_messages (
                platform TEXT NOT NULL,
                message_id TEXT NOT NULL,
                seen_at INTEGER NOT NULL,
                PRIMARY KEY (platform, message_id)
            )"""
        )
        self._conn.commit()

    def check(self, platform: str, message_id: str) -> bool:
        """Return True if ``message_id`` is new for ``platform`` and record it.

        Messages without an id cannot be deduplicated and always count as new.
        """
        if not message_id:
            return True
        now = int(time.time())
        with self._lock:
            self._conn.execute(
                "DELETE FROM seen_messages WHERE seen_at < ?",
                (now - self._retention_seconds,),
            )
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO seen_messages (platform, message_id, seen_at) "
                "VALUES (?, ?, ?)",
                (platform, message_id, now),
            )
            self._conn.commit()
            return cursor.rowcount == 1

    def close(self) -> None:
        self._conn.close()
