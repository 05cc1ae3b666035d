"""GMCR pipeline for the chat orchestrator.

This module provides the per-message processing pipeline:
- Rate limiting and business-relevance gating
- Intent detection and knowledge-update detection
- Webhook dispatch and usage tracking
- Reply generation with degradation to safe defaults
"""

from orchestrator.pipeline.knowledge import detect_knowledge_update
from orchestrator.pipeline.models import (
    FALLBACK_REPLY,
    OFF_TOPIC_MESSAGE,
    RATE_LIMITED_MESSAGE,
    Diagnostics,
    InputType,
    IntentLabel,
    IntentResult,
    KnowledgeUpdateResult,
    OffTopic,
    PipelineContext,
    PipelineInput,
    PipelineResult,
    RateLimited,
    RateLimitResult,
    RelevanceResult,
    Replied,
    ReplyRequest,
    ReplyResult,
    UsageResult,
    WebhookResult,
    result_text,
)
from orchestrator.pipeline.providers import (
    CapabilityProviders,
    IntentClassifier,
    RateLimiter,
    RelevanceClassifier,
    ReplyGenerator,
    UsageTracker,
    WebhookDispatcher,
)
from orchestrator.pipeline.runner import GMCRPipeline, StageTimeouts, run_pipeline

__all__ = [
    # Runner
    "GMCRPipeline",
    "StageTimeouts",
    "run_pipeline",
    "detect_knowledge_update",
    # Providers
    "CapabilityProviders",
    "IntentClassifier",
    "RateLimiter",
    "RelevanceClassifier",
    "ReplyGenerator",
    "UsageTracker",
    "WebhookDispatcher",
    # Models
    "FALLBACK_REPLY",
    "OFF_TOPIC_MESSAGE",
    "RATE_LIMITED_MESSAGE",
    "Diagnostics",
    "InputType",
    "IntentLabel",
    "IntentResult",
    "KnowledgeUpdateResult",
    "OffTopic",
    "PipelineContext",
    "PipelineInput",
    "PipelineResult",
    "RateLimited",
    "RateLimitResult",
    "RelevanceResult",
    "Replied",
    "ReplyRequest",
    "ReplyResult",
    "UsageResult",
    "WebhookResult",
    "result_text",
]
