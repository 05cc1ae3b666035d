"""Usage trackers counting pipeline actions per tenant and session."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import Counter
from datetime import UTC, datetime

from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import UsageResult
from orchestrator.providers.state_db import StateDB

logger = logging.getLogger(__name__)


class InMemoryUsageTracker:
    """Reference tracker holding counters in process memory."""

    def __init__(self) -> None:
        self._counts: Counter[tuple[str, str, str]] = Counter()
        self._lock = threading.Lock()

    async def record(
        self, session_id: str, config: ClientConfig, action: str,
    ) -> UsageResult:
        key = (config.client_id, session_id, action)
        with self._lock:
            self._counts[key] += 1
            count = self._counts[key]
        logger.debug("Usage tracked: %s for session %s (%d)", action, session_id, count)
        return UsageResult(tracked=True, action=action, count=count)

    def get_usage(self, client_id: str, session_id: str) -> dict[str, int]:
        with self._lock:
            return {
                action: count
                for (cid, sid, action), count in self._counts.items()
                if cid == client_id and sid == session_id
            }


class SQLiteUsageTracker:
    """Persistent tracker; each record is an atomic upsert-and-read."""

    def __init__(self, db: StateDB) -> None:
        self._db = db

    async def record(
        self, session_id: str, config: ClientConfig, action: str,
    ) -> UsageResult:
        count = await asyncio.to_thread(self._increment, config.client_id, session_id, action)
        return UsageResult(tracked=True, action=action, count=count)

    def _increment(self, client_id: str, session_id: str, action: str) -> int:
        now = datetime.now(UTC).isoformat()
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO usage_counters (client_id, session_id, action, count, last_seen) "
                "VALUES (?, ?, ?, 1, ?) "
                "ON CONFLICT(client_id, session_id, action) "
                "DO UPDATE SET count = count + 1, last_seen = excluded.last_seen",
                (client_id, session_id, action, now),
            )
            row = conn.execute(
                "SELECT count FROM usage_counters "
                "WHERE client_id = ? AND session_id = ? AND action = ?",
                (client_id, session_id, action),
            ).fetchone()
        return int(row["count"])

    def get_usage(self, client_id: str, session_id: str) -> dict[str, int]:
        rows = self._db.fetch_all(
            "SELECT action, count FROM usage_counters "
            "WHERE client_id = ? AND session_id = ? ORDER BY action",
            (client_id, session_id),
        )
        return {row["action"]: row["count"] for row in rows}


# Trackers that can also report their counters
UsageStore = InMemoryUsageTracker | SQLiteUsageTracker
