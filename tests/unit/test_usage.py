"""Tests for usage trackers."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest

from orchestrator.providers.state_db import StateDB
from orchestrator.providers.usage import InMemoryUsageTracker, SQLiteUsageTracker
from tests.conftest import make_client_config


class TestInMemoryUsageTracker:
    @pytest.mark.asyncio
    async def test_counts_per_action(self) -> None:
        tracker = InMemoryUsageTracker()
        config = make_client_config()
        await tracker.record("s1", config, "chat")
        result = await tracker.record("s1", config, "chat")
        await tracker.record("s1", config, "instagram_dm")

        assert result.tracked is True
        assert result.count == 2
        assert tracker.get_usage("acme", "s1") == {"chat": 2, "instagram_dm": 1}

    @pytest.mark.asyncio
    async def test_clients_kept_apart(self) -> None:
        tracker = InMemoryUsageTracker()
        await tracker.record("s1", make_client_config(client_id="a"), "chat")
        assert tracker.get_usage("b", "s1") == {}


class TestSQLiteUsageTracker:
    @pytest.fixture
    def db(self, tmp_path: Path) -> StateDB:
        return StateDB(str(tmp_path / "state.db"))

    @pytest.mark.asyncio
    async def test_upsert_increments(self, db: StateDB) -> None:
        tracker = SQLiteUsageTracker(db)
        config = make_client_config()
        counts = [(await tracker.record("s1", config, "chat")).count for _ in range(3)]
        assert counts == [1, 2, 3]
        assert tracker.get_usage("acme", "s1") == {"chat": 3}

    @pytest.mark.asyncio
    async def test_concurrent_records_not_lost(self, db: StateDB) -> None:
        tracker = SQLiteUsageTracker(db)
        config = make_client_config()
        await asyncio.gather(*[tracker.record("s1", config, "chat") for _ in range(20)])
        assert tracker.get_usage("acme", "s1") == {"chat": 20}

    def test_unknown_session_empty(self, db: StateDB) -> None:
        assert SQLiteUsageTracker(db).get_usage("acme", "nobody") == {}


def test_closed_db_rejects_queries(tmp_path: Path) -> None:
    db = StateDB(str(tmp_path / "state.db"))
    db.close()
    with pytest.raises(sqlite3.ProgrammingError):
        db.fetch_all("SELECT 1")
