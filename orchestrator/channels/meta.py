"""Meta Graph channels (Instagram and Facebook Messenger).

Handles Meta webhook deliveries: verification challenge, HMAC signature
check, messaging extraction, and reply delivery with retry logic.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import httpx

from orchestrator.channels.base import as_dict, dict_items, epoch_seconds, post_with_retry
from orchestrator.channels.models import ChannelResponse, InboundMessage
from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import InputType

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com/v18.0"


class MetaAdapter:
    """Shared Graph webhook handling; subclasses name the platform."""

    platform = "meta"

    def __init__(
        self,
        client: httpx.AsyncClient,
        verify_token: str | None,
        app_secret: str | None = None,
        access_token: str | None = None,
        account_id: str | None = None,
        graph_base: str = GRAPH_API_BASE,
    ) -> None:
        self._client = client
        self._verify_token = verify_token
        self._app_secret = app_secret
        self._access_token = access_token
        self._account_id = account_id
        self._graph_base = graph_base

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool:
        """Verify the ``X-Hub-Signature-256`` HMAC-SHA256 of the raw body.

        Without an app secret configured there is nothing to check against
        and every delivery is accepted.
        """
        if not self._app_secret:
            return True
        signature = headers.get("x-hub-signature-256", "")
        if not signature.startswith("sha256="):
            return False

        expected = hmac.new(
            self._app_secret.encode(), body, hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(signature[7:], expected)

    def handle_verification(self, params: dict[str, str]) -> ChannelResponse | None:
        """Answer the ``hub.mode=subscribe`` challenge.

        Returns None when the request is not a subscribe handshake.
        """
        if params.get("hub.mode") != "subscribe":
            return None

        token = params.get("hub.verify_token", "")
        if self._verify_token and hmac.compare_digest(token, self._verify_token):
            return ChannelResponse(content=params.get("hub.challenge", ""), status_code=200)
        return ChannelResponse(content="Verification failed", status_code=403)

    def to_canonical_input(self, payload: dict[str, Any]) -> list[InboundMessage]:
        """Extract text messages from ``entry[].messaging[]``.

        Echoes of the page's own messages, reads, reactions and attachments
        without text are skipped.
        """
        messages: list[InboundMessage] = []
        for entry in dict_items(payload.get("entry")):
            for event in dict_items(entry.get("messaging")):
                message = as_dict(event.get("message"))
                text = message.get("text")
                if not isinstance(text, str) or not text or message.get("is_echo"):
                    continue
                sender_id = str(as_dict(event.get("sender")).get("id", ""))
                if not sender_id or sender_id == self._account_id:
                    continue
                messages.append(InboundMessage(
                    platform=self.platform,
                    text=text,
                    sender_id=sender_id,
                    session_id=f"{self.platform}_{sender_id}",
                    input_type=InputType.DM,
                    message_id=str(message.get("mid", "")),
                    timestamp=epoch_seconds(event.get("timestamp")),
                    metadata={"recipient_id": as_dict(event.get("recipient")).get("id")},
                ))
        return messages

    async def send_reply(self, platform_user_id: str, text: str) -> bool:
        """Send a reply through the Graph ``/me/messages`` endpoint."""
        if not self._access_token:
            logger.warning("No page access token configured; %s reply dropped", self.platform)
            return False
        return await post_with_retry(
            self._client,
            f"{self._graph_base}/me/messages",
            json={
                "recipient": {"id": platform_user_id},
                "message": {"text": text},
                "messaging_type": "RESPONSE",
            },
            params={"access_token": self._access_token},
        )


class InstagramAdapter(MetaAdapter):
    platform = "instagram"

    @classmethod
    def from_config(cls, config: ClientConfig, client: httpx.AsyncClient) -> InstagramAdapter:
        return cls(
            client,
            verify_token=config.instagram_verify_token,
            app_secret=config.meta_app_secret,
            access_token=config.meta_page_access_token,
            account_id=config.instagram_account_id,
        )


class FacebookAdapter(MetaAdapter):
    platform = "facebook"

    @classmethod
    def from_config(cls, config: ClientConfig, client: httpx.AsyncClient) -> FacebookAdapter:
        return cls(
            client,
            verify_token=config.facebook_verify_token,
            app_secret=config.meta_app_secret,
            access_token=config.meta_page_access_token,
        )
