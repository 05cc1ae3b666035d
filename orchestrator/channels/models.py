"""Data models shared by the channel adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import InputType, PipelineInput


@dataclass
class InboundMessage:
    """Normalized inbound platform message for pipeline processing."""

    platform: str  # "chat", "instagram", "facebook" or "twitter"
    text: str
    sender_id: str
    session_id: str
    input_type: InputType = InputType.DM
    message_id: str = ""
    timestamp: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def action(self) -> str:
        if self.platform == "chat":
            return "chat"
        return f"{self.platform}_{self.input_type.value}"

    def to_pipeline_input(self, config: ClientConfig) -> PipelineInput:
        return PipelineInput(
            session_id=self.session_id,
            message=self.text,
            input_type=self.input_type,
            client_config=config,
            action=self.action,
        )


@dataclass
class ChannelResponse:
    """HTTP answer an adapter wants returned to the platform."""

    content: str
    status_code: int
    media_type: str = "text/plain"
