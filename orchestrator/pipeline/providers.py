"""Capability provider contracts consumed by the GMCR pipeline.

Each contract is a single async method so a reference implementation and a
live AI/storage-backed one are interchangeable without touching the
pipeline. ``CapabilityProviders`` bundles one of each and is handed to the
pipeline explicitly; nothing is looked up from module state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import (
    IntentResult,
    RateLimitResult,
    RelevanceResult,
    ReplyRequest,
    ReplyResult,
    UsageResult,
    WebhookResult,
)


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, session_id: str, config: ClientConfig) -> RateLimitResult: ...


@runtime_checkable
class RelevanceClassifier(Protocol):
    async def classify(self, message: str, config: ClientConfig) -> RelevanceResult: ...


@runtime_checkable
class IntentClassifier(Protocol):
    async def classify(self, message: str, config: ClientConfig) -> IntentResult: ...


@runtime_checkable
class WebhookDispatcher(Protocol):
    async def send(self, url: str, payload: dict[str, Any]) -> WebhookResult: ...


@runtime_checkable
class UsageTracker(Protocol):
    async def record(
        self, session_id: str, config: ClientConfig, action: str,
    ) -> UsageResult: ...


@runtime_checkable
class ReplyGenerator(Protocol):
    async def generate(self, request: ReplyRequest) -> ReplyResult: ...


@dataclass(frozen=True)
class CapabilityProviders:
    """Provider bundle for one tenant (or the whole process)."""

    rate_limiter: RateLimiter
    relevance_classifier: RelevanceClassifier
    intent_classifier: IntentClassifier
    webhook_dispatcher: WebhookDispatcher
    usage_tracker: UsageTracker
    reply_generator: ReplyGenerator
