"""Shared Pydantic data models for the GMCR orchestrator."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# --- Enums ---


class AuditEventType(str, Enum):
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMITED = "rate_limited"
    OFF_TOPIC = "off_topic"
    REPLY = "reply"
    KNOWLEDGE_UPDATE = "knowledge_update"
    PROVIDER_DEGRADED = "provider_degraded"
    PIPELINE_ERROR = "pipeline_error"
    WEBHOOK_VERIFICATION = "webhook_verification"
    WEBHOOK_REJECTED = "webhook_rejected"
    CHANNEL_DELIVERY = "channel_delivery"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    client_id: str | None = None
    session_id: str | None = None
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "blocked" | "degraded"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
