"""Chat widget channel: the ``POST /chat`` body, answered inline."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.channels.models import ChannelResponse, InboundMessage
from orchestrator.pipeline.models import InputType


class ChatRequest(BaseModel):
    """Body of ``POST /chat``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    input_type: InputType = Field(default=InputType.CHAT, alias="inputType")
    message: str = Field(min_length=1)
    session_id: str = Field(min_length=1, max_length=256, alias="sessionId")
    client_id: str | None = Field(default=None, alias="clientId")


class ChatWidgetAdapter:
    platform = "chat"

    def handle_verification(self, params: dict[str, str]) -> ChannelResponse | None:
        return None

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool:
        return True

    def to_canonical_input(self, payload: dict[str, Any]) -> list[InboundMessage]:
        """Validate a chat body. Raises pydantic.ValidationError on a bad body."""
        request = ChatRequest.model_validate(payload)
        return [InboundMessage(
            platform=self.platform,
            text=request.message,
            sender_id=request.session_id,
            session_id=request.session_id,
            input_type=request.input_type,
        )]

    async def send_reply(self, platform_user_id: str, text: str) -> bool:
        # Replies go back in the HTTP response body.
        return True
