"""Audit logger: append-only JSON Lines trail of pipeline outcomes with rotation."""

from __future__ import annotations

import fcntl
import json
import os
from pathlib import Path

from orchestrator.models import AuditEvent


def read_audit_events(log_path: Path) -> list[AuditEvent]:
    """Load every event from an audit log file, skipping blank lines."""
    if not log_path.exists():
        return []
    events: list[AuditEvent] = []
    for line in log_path.read_text().splitlines():
        if line.strip():
            events.append(AuditEvent.model_validate_json(line))
    return events


class AuditLogger:
    """Append-only structured audit logger with size-based rotation.

    Safe to share between concurrent pipeline runs: every write takes an
    exclusive lock on a sibling lock file, so rotation and append never
    interleave across workers.
    """

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        """Create AuditLogger with rotation settings from environment variables."""
        max_bytes = int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760"))
        backup_count = int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5"))
        return cls(log_path=log_path, max_bytes=max_bytes, backup_count=backup_count)

    def _backup_path(self, index: int) -> Path:
        return self.log_path.parent / f"{self.log_path.name}.{index}"

    def _maybe_rotate(self) -> None:
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self._max_bytes:
            return

        oldest = self._backup_path(self._backup_count)
        if oldest.exists():
            oldest.unlink()

        for i in range(self._backup_count - 1, 0, -1):
            current = self._backup_path(i)
            if current.exists():
                current.rename(self._backup_path(i + 1))

        self.log_path.rename(self._backup_path(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(
            json.loads(event.model_dump_json(exclude_none=True)),
            separators=(",", ":"),
        )

        lock_file = self.log_path.parent / f".{self.log_path.name}.lock"
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)
