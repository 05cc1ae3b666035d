"""Outbound tenant webhooks: best-effort notification of inbound messages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from orchestrator.pipeline.models import WebhookResult

logger = logging.getLogger(__name__)

_MAX_RETRIES = 2
_BACKOFF_BASE_SECONDS = 0.25


class HttpWebhookDispatcher:
    """POSTs the payload as JSON; retries on 429 or 5xx with exponential backoff."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = _MAX_RETRIES,
        timeout: float = 2.0,
    ) -> None:
        self._client = client
        self._max_retries = max_retries
        self._timeout = timeout

    async def send(self, url: str, payload: dict[str, Any]) -> WebhookResult:
        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.post(url, json=payload, timeout=self._timeout)
            except httpx.HTTPError as e:
                logger.warning("Webhook delivery to %s failed: %s", url, e)
                return WebhookResult(sent=False, url=url, error=type(e).__name__)

            if resp.status_code < 400:
                return WebhookResult(sent=True, url=url)
            if not self._should_retry(resp.status_code):
                break
            if attempt < self._max_retries:
                await asyncio.sleep(_BACKOFF_BASE_SECONDS * 2 ** attempt)

        logger.warning("Webhook %s rejected delivery with HTTP %s", url, resp.status_code)
        return WebhookResult(sent=False, url=url, error=f"HTTP {resp.status_code}")

    @staticmethod
    def _should_retry(status_code: int) -> bool:
        return status_code == 429 or status_code >= 500


class NullWebhookDispatcher:
    """Local-dev dispatcher: records the call in the log instead of sending it."""

    async def send(self, url: str, payload: dict[str, Any]) -> WebhookResult:
        logger.info("Webhook triggered to %s for session %s", url, payload.get("sessionId"))
        return WebhookResult(sent=True, url=url)
