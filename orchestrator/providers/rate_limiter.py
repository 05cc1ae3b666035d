"""Per-session rate limiters.

Limits come from ClientConfig: at most ``rate_limit_max`` requests per
``rate_limit_ttl`` seconds for each ``<prefix><client_id>:<session_id>`` key.
"""

from __future__ import annotations

import asyncio
import threading
import time

from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import RateLimitResult
from orchestrator.providers.state_db import StateDB


def rate_limit_key(config: ClientConfig, session_id: str) -> str:
    return f"{config.rate_limit_key_prefix}{config.client_id}:{session_id}"


class AllowAllRateLimiter:
    """Reference limiter that admits every request."""

    def __init__(self, remaining: int = 100) -> None:
        self._remaining = remaining

    async def check(self, session_id: str, config: ClientConfig) -> RateLimitResult:
        return RateLimitResult(allowed=True, remaining=self._remaining)


class SlidingWindowRateLimiter:
    """In-memory sliding window limiter for a single process.

    The prune/count/append sequence runs under a lock, so concurrent
    requests for one key can never both take the last slot.
    """

    def __init__(self) -> None:
        self._counters: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    async def check(self, session_id: str, config: ClientConfig) -> RateLimitResult:
        return self._check(rate_limit_key(config, session_id), config)

    def _check(self, key: str, config: ClientConfig) -> RateLimitResult:
        max_requests = config.rate_limit_max
        with self._lock:
            now = time.time()
            cutoff = now - config.rate_limit_ttl
            timestamps = [t for t in self._counters.get(key, []) if t > cutoff]

            if len(timestamps) >= max_requests:
                if timestamps:
                    self._counters[key] = timestamps
                else:
                    self._counters.pop(key, None)
                return RateLimitResult(allowed=False, remaining=0)

            timestamps.append(now)
            self._counters[key] = timestamps
            return RateLimitResult(allowed=True, remaining=max_requests - len(timestamps))


class SQLiteRateLimiter:
    """Fixed-window limiter backed by StateDB, shared by every worker process."""

    def __init__(self, db: StateDB) -> None:
        self._db = db

    async def check(self, session_id: str, config: ClientConfig) -> RateLimitResult:
        return await asyncio.to_thread(
            self._check, rate_limit_key(config, session_id), config,
        )

    def _check(self, key: str, config: ClientConfig) -> RateLimitResult:
        max_requests = config.rate_limit_max
        now = time.time()
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT window_start, count FROM rate_limits WHERE key = ?", (key,),
            ).fetchone()

            if row is None or now - row["window_start"] >= config.rate_limit_ttl:
                if max_requests < 1:
                    return RateLimitResult(allowed=False, remaining=0)
                conn.execute(
                    "INSERT INTO rate_limits (key, window_start, count) VALUES (?, ?, 1) "
                    "ON CONFLICT(key) DO UPDATE SET window_start = excluded.window_start, "
                    "count = 1",
                    (key, now),
                )
                return RateLimitResult(allowed=True, remaining=max_requests - 1)

            count = row["count"]
            if count >= max_requests:
                return RateLimitResult(allowed=False, remaining=0)

            conn.execute(
                "UPDATE rate_limits SET count = count + 1 WHERE key = ?", (key,),
            )
            return RateLimitResult(allowed=True, remaining=max_requests - count - 1)
