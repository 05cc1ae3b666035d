"""xAI chat-completions client shared by the live AI providers.

xAI exposes an OpenAI-compatible ``/chat/completions`` endpoint; this client
sends one non-streaming request and extracts the assistant message.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

DEFAULT_XAI_BASE_URL = "https://api.x.ai/v1"

ModelT = TypeVar("ModelT", bound=BaseModel)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ProviderError(Exception):
    """Transport, HTTP, or decoding failure talking to an external provider."""


class XAIClient:
    """Minimal async client for xAI chat completions."""

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        base_url: str = DEFAULT_XAI_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self._base_url = base_url
        self._timeout = timeout

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        temperature: float,
        max_tokens: int | None = None,
        collections: list[str] | None = None,
    ) -> str:
        """Return the assistant message content for ``messages``.

        Raises:
            ProviderError: On connection errors, non-2xx responses, or a
                response body without ``choices[0].message.content``.
        """
        url = f"{self._base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        body: dict[str, Any] = {
            "messages": messages,
            "model": model,
            "stream": False,
            "temperature": temperature,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if collections:
            body["collections"] = collections

        try:
            resp = await self._client.post(
                url, json=body, headers=headers, timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"xAI request failed: {type(e).__name__}") from e

        if resp.status_code >= 400:
            raise ProviderError(f"xAI API error {resp.status_code}: {resp.text[:200]}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            raise ProviderError("xAI response missing choices[0].message.content") from e
        return content or ""


def parse_json_reply(content: str, model: type[ModelT]) -> ModelT:
    """Decode a classifier's JSON answer into ``model``.

    Tolerates a surrounding markdown code fence.

    Raises:
        ProviderError: If the content is not JSON or does not match the schema.
    """
    text = content.strip()
    fenced = _CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Classifier returned non-JSON content: {e.msg}") from e
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProviderError(
            f"Classifier JSON failed validation: {e.error_count()} error(s)",
        ) from e
