"""GMCR pipeline data models.

This module defines:
- The canonical pipeline input (PipelineInput, InputType)
- Per-stage result records (RateLimitResult ... ReplyResult)
- The mutable per-run working set (PipelineContext)
- The tagged pipeline outcome (RateLimited | OffTopic | Replied)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orchestrator.config.client_config import ClientConfig

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please try again later."
OFF_TOPIC_MESSAGE = (
    "This message appears to be off-topic. Please ask about business-related matters."
)
FALLBACK_REPLY = "Sorry, I encountered an error generating a response."

DEFAULT_CONFIDENCE = 0.5


# --- Enums ---


class InputType(str, Enum):
    """Where an inbound message came from, as seen by reply generation."""

    CHAT = "chat"
    DM = "dm"
    POST = "post"


class IntentLabel(str, Enum):
    """Closed set of intents the classifiers may report."""

    CUSTOMER = "customer"
    LEAD = "lead"
    PROSPECT = "prospect"
    EXISTING_CLIENT = "existing_client"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: object) -> IntentLabel:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
            try:
                return cls(normalized)
            except ValueError:
                return cls.OTHER
        return cls.OTHER


def _clamp_confidence(value: object) -> object:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return min(max(float(value), 0.0), 1.0)
    return value


# --- Input ---


@dataclass(frozen=True)
class PipelineInput:
    """Canonical, platform-neutral input every channel adapter produces."""

    session_id: str
    message: str
    input_type: InputType
    client_config: ClientConfig
    action: str | None = None

    @property
    def usage_action(self) -> str:
        return self.action or self.input_type.value


# --- Stage results ---


class RateLimitResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: int = Field(default=0, ge=0)
    error: str | None = None


class RelevanceResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_relevant: bool = Field(alias="isRelevant")
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    error: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: object) -> object:
        return _clamp_confidence(value)

    @classmethod
    def fail_open(cls, error: str) -> RelevanceResult:
        return cls(is_relevant=True, confidence=DEFAULT_CONFIDENCE, error=error)


class IntentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: IntentLabel = IntentLabel.OTHER
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    error: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: object) -> object:
        return _clamp_confidence(value)

    @field_validator("intent", mode="before")
    @classmethod
    def known_intent(cls, value: object) -> IntentLabel:
        return IntentLabel.coerce(value)

    @classmethod
    def default(cls, error: str | None = None) -> IntentResult:
        return cls(intent=IntentLabel.OTHER, confidence=DEFAULT_CONFIDENCE, error=error)


class KnowledgeUpdateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    updated: bool
    knowledge: str | None = None


class WebhookResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    sent: bool
    url: str | None = None
    error: str | None = None


class UsageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tracked: bool
    action: str
    count: int | None = None
    error: str | None = None


class ReplyRequest(BaseModel):
    """Everything reply generation may draw on; intent feeds prompt assembly."""

    model_config = ConfigDict(frozen=True)

    input_type: InputType
    message: str
    session_id: str
    client_config: ClientConfig
    intent: IntentResult = Field(default_factory=IntentResult.default)
    knowledge: str | None = None


class ReplyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    reply: str
    error: str | None = None


# --- Working set ---


@dataclass
class PipelineContext:
    """Mutable per-run state; owned by exactly one pipeline run."""

    input: PipelineInput
    rate_limit_result: RateLimitResult | None = None
    relevance_result: RelevanceResult | None = None
    intent_result: IntentResult | None = None
    knowledge_update_result: KnowledgeUpdateResult | None = None
    webhook_result: WebhookResult | None = None
    usage_result: UsageResult | None = None
    reply_result: ReplyResult | None = None
    degraded: list[str] = field(default_factory=list)

    @property
    def session_id(self) -> str:
        return self.input.session_id

    @property
    def message(self) -> str:
        return self.input.message

    @property
    def input_type(self) -> InputType:
        return self.input.input_type

    @property
    def client_config(self) -> ClientConfig:
        return self.input.client_config


# --- Outcome ---


class Diagnostics(BaseModel):
    """Per-stage outputs captured while the stages ran."""

    model_config = ConfigDict(frozen=True)

    relevance: RelevanceResult
    intent: IntentResult
    knowledge_updated: bool = False
    knowledge: str | None = None
    webhook_sent: bool = False
    usage_tracked: bool = False
    rate_limit_remaining: int | None = None
    degraded: list[str] = Field(default_factory=list)
    error: str | None = None


class RateLimited(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["rate_limited"] = "rate_limited"
    message: str = RATE_LIMITED_MESSAGE


class OffTopic(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["off_topic"] = "off_topic"
    message: str = OFF_TOPIC_MESSAGE


class Replied(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["reply"] = "reply"
    text: str = Field(min_length=1)
    session_id: str
    input_type: InputType
    diagnostics: Diagnostics


PipelineResult = Annotated[
    Union[RateLimited, OffTopic, Replied],
    Field(discriminator="type"),
]


def result_text(result: Any) -> str:
    """Text to send back to the user for any pipeline outcome."""
    if isinstance(result, Replied):
        return result.text
    return result.message
