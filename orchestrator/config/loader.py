"""Client config providers: file-backed, HTTP config service, and TTL cache."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Protocol

import httpx

from orchestrator.config.client_config import (
    ClientConfig,
    ConfigurationError,
    load_client_config,
    merge_overrides,
    parse_client_config,
)

logger = logging.getLogger(__name__)

_CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ConfigProvider(Protocol):
    async def get(self, client_id: str) -> ClientConfig: ...


def _check_client_id(client_id: Any) -> None:
    if not isinstance(client_id, str) or not _CLIENT_ID_RE.match(client_id):
        raise ConfigurationError(f"Invalid client id: {client_id!r}")


class FileConfigProvider:
    """Loads ``<config_dir>/<client_id>.json``."""

    def __init__(self, config_dir: str, overrides: dict[str, Any] | None = None) -> None:
        self._config_dir = Path(config_dir)
        self._overrides = overrides or {}

    async def get(self, client_id: str) -> ClientConfig:
        _check_client_id(client_id)
        return load_client_config(
            self._config_dir / f"{client_id}.json", self._overrides, client_id=client_id,
        )


class HttpConfigProvider:
    """Fetches full tenant config from an external config service.

    ``url_template`` may contain ``{client_id}``.
    """

    def __init__(
        self,
        url_template: str,
        client: httpx.AsyncClient,
        overrides: dict[str, Any] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url_template = url_template
        self._client = client
        self._overrides = overrides or {}
        self._timeout = timeout

    async def get(self, client_id: str) -> ClientConfig:
        _check_client_id(client_id)
        url = self._url_template.format(client_id=client_id)
        try:
            resp = await self._client.get(url, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise ConfigurationError(
                f"Failed to fetch client config: {e}", client_id=client_id,
            ) from e
        if resp.status_code != 200:
            raise ConfigurationError(
                f"Failed to fetch client config: HTTP {resp.status_code}",
                client_id=client_id,
            )
        try:
            raw = resp.json()
        except ValueError as e:
            raise ConfigurationError(
                f"Config service returned invalid JSON: {e}", client_id=client_id,
            ) from e
        if isinstance(raw, dict):
            raw = merge_overrides(raw, self._overrides)
        return parse_client_config(raw, source=url)


class CachingConfigProvider:
    """TTL cache in front of another provider.

    Cached configs are frozen models, so handing the same instance to
    concurrent requests is safe.
    """

    def __init__(self, inner: ConfigProvider, ttl_seconds: float = 300.0) -> None:
        self._inner = inner
        self._ttl = ttl_seconds
        self._entries: dict[str, tuple[float, ClientConfig]] = {}

    async def get(self, client_id: str) -> ClientConfig:
        now = time.monotonic()
        entry = self._entries.get(client_id)
        if entry and entry[0] > now:
            return entry[1]
        config = await self._inner.get(client_id)
        self._entries[client_id] = (now + self._ttl, config)
        logger.debug("Loaded client config for %s", client_id)
        return config

    def invalidate(self, client_id: str | None = None) -> None:
        if client_id is None:
            self._entries.clear()
        else:
            self._entries.pop(client_id, None)
