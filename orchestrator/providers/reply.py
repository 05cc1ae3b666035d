"""Reply generation: system-prompt assembly from ClientConfig plus the xAI call."""

from __future__ import annotations

import logging

from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import (
    FALLBACK_REPLY,
    InputType,
    IntentLabel,
    IntentResult,
    ReplyRequest,
    ReplyResult,
)
from orchestrator.providers.xai import ProviderError, XAIClient

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I could not generate a response."

_INTENT_HINTS = {
    IntentLabel.CUSTOMER: "The sender looks like a customer; focus on resolving their request.",
    IntentLabel.LEAD: "The sender looks like a sales lead; be helpful about offerings and next steps.",
    IntentLabel.PROSPECT: "The sender is exploring; explain what the business does clearly.",
    IntentLabel.EXISTING_CLIENT: (
        "The sender is an existing client; be attentive to their account or order."
    ),
}


def build_chat_prompt(config: ClientConfig) -> str:
    if config.prompt_template:
        return config.prompt_template

    synopsis = config.business_synopsis
    parts = [f"You are {config.brand_name}, {config.brand_voice}."]
    if synopsis.description:
        parts.append(synopsis.description)
    if synopsis.key_areas:
        parts.append("Key areas: " + ", ".join(synopsis.key_areas) + ".")
    if synopsis.mission:
        parts.append(f"Mission: {synopsis.mission}.")
    prompt = " ".join(parts)
    if config.enhanced_prompt_additions:
        prompt += f"\n\n{config.enhanced_prompt_additions.strip()}"
    prompt += (
        "\n\nRespond conversationally to the user message. Use the provided knowledge "
        "base collections to give accurate, specific information about "
        f"{config.brand_name} services and processes."
    )
    return prompt


def build_system_prompt(
    config: ClientConfig,
    input_type: InputType,
    intent: IntentResult | None = None,
    knowledge: str | None = None,
) -> str:
    """Assemble the system prompt for one reply."""
    if input_type == InputType.CHAT:
        prompt = build_chat_prompt(config)
    else:
        prompt = config.social_prompt

    if intent is not None and intent.intent in _INTENT_HINTS:
        prompt += f"\n\n{_INTENT_HINTS[intent.intent]}"
    if knowledge:
        prompt += (
            "\n\nThe business owner just supplied new knowledge: "
            f"\"{knowledge}\". Confirm briefly that it was received."
        )
    return prompt


class XAIReplyGenerator:
    """Generates replies with xAI; every failure maps to a fallback reply."""

    def __init__(self, client: XAIClient) -> None:
        self._client = client

    async def generate(self, request: ReplyRequest) -> ReplyResult:
        config = request.client_config
        system_prompt = build_system_prompt(
            config, request.input_type, request.intent, request.knowledge,
        )
        try:
            content = await self._client.complete(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": request.message},
                ],
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                collections=[config.xai_collection] if config.xai_collection else None,
            )
        except ProviderError as e:
            logger.warning("Reply generation failed for %s: %s", config.client_id, e)
            return ReplyResult(reply=FALLBACK_REPLY, error=str(e))
        return ReplyResult(reply=content.strip() or EMPTY_REPLY)


class EchoReplyGenerator:
    """Local-dev reply generator that echoes the message back."""

    async def generate(self, request: ReplyRequest) -> ReplyResult:
        return ReplyResult(
            reply=(
                f'Mock response: I received your message "{request.message}". '
                "This is test mode since using test API key."
            ),
        )
