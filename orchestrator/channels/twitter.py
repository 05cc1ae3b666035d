"""Twitter (X) Account Activity channel.

CRC challenge, signature verification, direct-message extraction, and DM
delivery through the v2 API.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from typing import Any

import httpx

from orchestrator.channels.base import as_dict, dict_items, epoch_seconds, post_with_retry
from orchestrator.channels.models import ChannelResponse, InboundMessage
from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import InputType

logger = logging.getLogger(__name__)

TWITTER_API_BASE = "https://api.twitter.com/2"


class TwitterAdapter:
    platform = "twitter"

    def __init__(
        self,
        client: httpx.AsyncClient,
        consumer_secret: str | None,
        access_token: str | None = None,
        account_id: str | None = None,
        api_base: str = TWITTER_API_BASE,
    ) -> None:
        self._client = client
        self._consumer_secret = consumer_secret
        self._access_token = access_token
        self._account_id = account_id
        self._api_base = api_base

    @classmethod
    def from_config(cls, config: ClientConfig, client: httpx.AsyncClient) -> TwitterAdapter:
        return cls(
            client,
            consumer_secret=config.twitter_consumer_secret,
            access_token=config.twitter_access_token,
            account_id=config.twitter_account_id,
        )

    def _sign(self, data: bytes) -> str:
        assert self._consumer_secret is not None
        digest = hmac.new(self._consumer_secret.encode(), data, hashlib.sha256).digest()
        return "sha256=" + base64.b64encode(digest).decode()

    def handle_verification(self, params: dict[str, str]) -> ChannelResponse | None:
        """Answer the CRC check with ``{"response_token": "sha256=<base64 HMAC>"}``."""
        crc_token = params.get("crc_token")
        if crc_token is None:
            return None
        if not self._consumer_secret:
            return ChannelResponse(content="Verification failed", status_code=403)
        body = json.dumps({"response_token": self._sign(crc_token.encode())})
        return ChannelResponse(content=body, status_code=200, media_type="application/json")

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool:
        if not self._consumer_secret:
            return False
        signature = headers.get("x-twitter-webhooks-signature", "")
        if not signature.startswith("sha256="):
            return False
        return hmac.compare_digest(signature, self._sign(body))

    def to_canonical_input(self, payload: dict[str, Any]) -> list[InboundMessage]:
        """Extract inbound DMs from ``direct_message_events``.

        Messages sent by the subscribed account itself are skipped.
        """
        own_id = self._account_id or str(payload.get("for_user_id", "")) or None
        messages: list[InboundMessage] = []
        for event in dict_items(payload.get("direct_message_events")):
            if event.get("type") != "message_create":
                continue
            create = as_dict(event.get("message_create"))
            sender_id = str(create.get("sender_id", ""))
            text = as_dict(create.get("message_data")).get("text", "")
            if not sender_id or not isinstance(text, str) or not text or sender_id == own_id:
                continue
            messages.append(InboundMessage(
                platform=self.platform,
                text=text,
                sender_id=sender_id,
                session_id=f"{self.platform}_{sender_id}",
                input_type=InputType.DM,
                message_id=str(event.get("id", "")),
                timestamp=epoch_seconds(event.get("created_timestamp")),
            ))
        return messages

    async def send_reply(self, platform_user_id: str, text: str) -> bool:
        if not self._access_token:
            logger.warning("No access token configured; twitter reply dropped")
            return False
        return await post_with_retry(
            self._client,
            f"{self._api_base}/dm_conversations/with/{platform_user_id}/messages",
            json={"text": text},
            headers={"Authorization": f"Bearer {self._access_token}"},
        )
