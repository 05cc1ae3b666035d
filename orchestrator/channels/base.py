"""Channel adapter contract and the retrying send helper the adapters share."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from orchestrator.channels.models import ChannelResponse, InboundMessage

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_BACKOFF_CAP_SECONDS = 30


@runtime_checkable
class ChannelAdapter(Protocol):
    """Translate platform payloads into canonical messages and deliver replies."""

    platform: str

    def handle_verification(self, params: dict[str, str]) -> ChannelResponse | None: ...

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool: ...

    def to_canonical_input(self, payload: dict[str, Any]) -> list[InboundMessage]: ...

    async def send_reply(self, platform_user_id: str, text: str) -> bool: ...


def should_retry(status_code: int) -> bool:
    """Only retry on 429 (rate limit) or 5xx (server error)."""
    return status_code == 429 or status_code >= 500


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    json: dict[str, Any],
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    max_retries: int = _MAX_RETRIES,
) -> bool:
    """POST ``json`` to ``url``; retry 429/5xx with exponential backoff capped at 30s.

    Returns True once the platform accepts the request.
    """
    for attempt in range(max_retries + 1):
        try:
            resp = await client.post(url, json=json, headers=headers, params=params)
        except httpx.HTTPError as e:
            logger.warning("Delivery to %s failed: %s", url, e)
            return False

        if resp.status_code < 400:
            return True
        if not should_retry(resp.status_code):
            logger.warning("Delivery to %s rejected with HTTP %s", url, resp.status_code)
            return False
        if attempt < max_retries:
            delay = min(2 ** attempt, _BACKOFF_CAP_SECONDS)
            await asyncio.sleep(delay)

    logger.warning("Delivery to %s gave up after %d attempts", url, max_retries + 1)
    return False


def as_dict(value: Any) -> dict[str, Any]:
    """``value`` if it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def dict_items(value: Any) -> list[dict[str, Any]]:
    """JSON objects in ``value`` if it is a list; anything else is dropped."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def epoch_seconds(millis: Any) -> int:
    """Platform millisecond timestamp to epoch seconds; 0 when unparseable."""
    try:
        return int(millis) // 1000
    except (TypeError, ValueError):
        return 0
