"""Shared test fixtures for the GMCR orchestrator."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from orchestrator.audit.logger import AuditLogger
from orchestrator.config.client_config import TEST_API_KEY, ClientConfig
from orchestrator.models import AuditEvent, AuditEventType, RiskLevel
from orchestrator.pipeline.models import (
    InputType,
    IntentLabel,
    IntentResult,
    PipelineInput,
    RateLimitResult,
    RelevanceResult,
    ReplyResult,
    UsageResult,
    WebhookResult,
)
from orchestrator.pipeline.providers import CapabilityProviders


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def client_config_dir(tmp_path: Path):
    """Write client configs into a temporary directory and return its path."""

    def _create(**configs: dict[str, Any]) -> Path:
        config_dir = tmp_path / "clients"
        config_dir.mkdir(exist_ok=True)
        for client_id, data in configs.items():
            (config_dir / f"{client_id}.json").write_text(json.dumps(data))
        return config_dir

    return _create


# --- Factory functions for test data ---


def make_client_config(**kwargs: Any) -> ClientConfig:
    """Factory for ClientConfig with sensible defaults."""
    defaults: dict[str, Any] = {
        "client_id": "acme",
        "brand_name": "Acme",
        "brand_voice": "a helpful assistant for a small design studio",
        "business_synopsis": {
            "description": "Acme builds websites for small businesses.",
            "key_areas": ["web design", "hosting"],
            "mission": "make small businesses look great online",
        },
        "xai_api_key": TEST_API_KEY,
        "rate_limit_max": 5,
        "rate_limit_ttl": 3600,
    }
    defaults.update(kwargs)
    return ClientConfig.model_validate(defaults)


def make_pipeline_input(**kwargs: Any) -> PipelineInput:
    """Factory for PipelineInput with sensible defaults."""
    defaults: dict[str, Any] = {
        "session_id": "s1",
        "message": "What are your hours?",
        "input_type": InputType.CHAT,
        "client_config": make_client_config(),
    }
    defaults.update(kwargs)
    return PipelineInput(**defaults)


def make_providers(**overrides: Any) -> CapabilityProviders:
    """Factory for a provider bundle of AsyncMocks answering the happy path."""
    rate_limiter = MagicMock()
    rate_limiter.check = AsyncMock(return_value=RateLimitResult(allowed=True, remaining=4))
    relevance = MagicMock()
    relevance.classify = AsyncMock(
        return_value=RelevanceResult(is_relevant=True, confidence=0.9),
    )
    intent = MagicMock()
    intent.classify = AsyncMock(
        return_value=IntentResult(intent=IntentLabel.CUSTOMER, confidence=0.8),
    )
    webhook = MagicMock()
    webhook.send = AsyncMock(return_value=WebhookResult(sent=True))
    usage = MagicMock()
    usage.record = AsyncMock(return_value=UsageResult(tracked=True, action="chat", count=1))
    reply = MagicMock()
    reply.generate = AsyncMock(return_value=ReplyResult(reply="We are open 9 to 5."))

    defaults: dict[str, Any] = {
        "rate_limiter": rate_limiter,
        "relevance_classifier": relevance,
        "intent_classifier": intent,
        "webhook_dispatcher": webhook,
        "usage_tracker": usage,
        "reply_generator": reply,
    }
    defaults.update(overrides)
    return CapabilityProviders(**defaults)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, object] = {
        "event_type": AuditEventType.REPLY,
        "action": "reply",
        "result": "success",
        "risk_level": RiskLevel.INFO,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)  # type: ignore[arg-type]
