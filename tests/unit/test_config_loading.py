"""Tests for client config parsing, settings and config providers."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from orchestrator.config.client_config import (
    SECRET_FIELDS,
    TEST_API_KEY,
    ClientConfig,
    ConfigurationError,
    load_client_config,
    parse_client_config,
)
from orchestrator.config.loader import (
    CachingConfigProvider,
    FileConfigProvider,
    HttpConfigProvider,
)
from orchestrator.config.settings import Settings
from tests.conftest import make_client_config


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig(client_id="acme")
        assert config.rate_limit_max == 1
        assert config.rate_limit_ttl == 3600
        assert config.rate_limit_key_prefix == "rate_limit:"
        assert config.rate_limit_on_error == "deny"
        assert config.model == "grok-3"
        assert config.train_marker == "TRAIN:"

    def test_camel_case_aliases(self) -> None:
        config = parse_client_config({
            "client_id": "acme",
            "xaiApiKey": "k",
            "webhookUrl": "https://hooks.example.com",
            "instagramVerifyToken": "v",
        })
        assert config.xai_api_key == "k"
        assert config.webhook_url == "https://hooks.example.com"
        assert config.instagram_verify_token == "v"

    def test_secrets_hidden_from_repr(self) -> None:
        assert "sekrit" not in repr(make_client_config(xai_api_key="sekrit"))

    def test_public_view_strips_secrets(self) -> None:
        view = make_client_config(meta_app_secret="m", twitter_access_token="t").public_view()
        assert not SECRET_FIELDS & view.keys()
        assert view["brand_name"] == "Acme"

    def test_test_mode(self) -> None:
        assert make_client_config(xai_api_key=TEST_API_KEY).is_test_mode is True
        assert make_client_config(xai_api_key="live").is_test_mode is False

    def test_platform_enabled(self) -> None:
        config = make_client_config(enabled_social_platforms=["instagram"])
        assert config.platform_enabled("instagram") is True
        assert config.platform_enabled("twitter") is False

    def test_invalid_config_raises_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid client config") as exc_info:
            parse_client_config({"client_id": "acme", "rate_limit_on_error": "sometimes"})
        assert exc_info.value.client_id == "acme"

    def test_non_object_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="JSON object"):
            parse_client_config(["acme"])

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_client_config(tmp_path / "nope.json")

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_client_config(path)

    def test_load_fills_missing_values_from_overrides(self, tmp_path: Path) -> None:
        path = tmp_path / "acme.json"
        path.write_text(json.dumps({"client_id": "acme", "xai_api_key": ""}))
        config = load_client_config(path, {"xai_api_key": "env-key", "model": None})
        assert config.xai_api_key == "env-key"
        assert config.model == "grok-3"

    def test_load_non_utf8_file(self, tmp_path: Path) -> None:
        path = tmp_path / "acme.json"
        path.write_bytes(b'{"client_id": "\xff"}')
        with pytest.raises(ConfigurationError, match="Invalid JSON") as exc_info:
            load_client_config(path, client_id="acme")
        assert exc_info.value.client_id == "acme"

    def test_shipped_default_config_is_valid(self) -> None:
        path = Path(__file__).parent.parent.parent / "config" / "clients" / "default.json"
        config = load_client_config(path)
        assert config.client_id == "default"
        assert config.is_test_mode is True


class TestSettings:
    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ORCHESTRATOR_DEFAULT_CLIENT", "acme")
        monkeypatch.setenv("CONFIG_CACHE_TTL", "30")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.delenv("ADMIN_TOKEN", raising=False)

        settings = Settings.from_env()

        assert settings.default_client_id == "acme"
        assert settings.config_cache_ttl == 30.0
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert settings.admin_token is None


class TestFileConfigProvider:
    @pytest.mark.asyncio
    async def test_loads_by_client_id(self, client_config_dir) -> None:
        config_dir = client_config_dir(acme={"client_id": "acme", "brand_name": "Acme"})
        config = await FileConfigProvider(str(config_dir)).get("acme")
        assert config.brand_name == "Acme"

    @pytest.mark.asyncio
    async def test_overrides_fill_missing_key(self, client_config_dir) -> None:
        config_dir = client_config_dir(
            acme={"client_id": "acme"},
            beta={"client_id": "beta", "xai_api_key": "own-key"},
        )
        provider = FileConfigProvider(str(config_dir), {"xai_api_key": "env-key"})
        assert (await provider.get("acme")).xai_api_key == "env-key"
        assert (await provider.get("beta")).xai_api_key == "own-key"

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, client_config_dir) -> None:
        provider = FileConfigProvider(str(client_config_dir()))
        with pytest.raises(ConfigurationError, match="Invalid client id"):
            await provider.get("../secrets")

    @pytest.mark.asyncio
    async def test_unknown_client(self, client_config_dir) -> None:
        provider = FileConfigProvider(str(client_config_dir()))
        with pytest.raises(ConfigurationError, match="not found"):
            await provider.get("ghost")

    @pytest.mark.asyncio
    async def test_non_string_client_id_rejected(self, client_config_dir) -> None:
        provider = FileConfigProvider(str(client_config_dir()))
        with pytest.raises(ConfigurationError, match="Invalid client id"):
            await provider.get(42)  # type: ignore[arg-type]


class TestHttpConfigProvider:
    @pytest.mark.asyncio
    async def test_fetches_templated_url(self) -> None:
        seen: list[str] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"client_id": "acme", "brand_name": "Acme"})

        http = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
        provider = HttpConfigProvider("https://config.example/{client_id}/full-config", http)

        config = await provider.get("acme")

        assert config.brand_name == "Acme"
        assert seen == ["https://config.example/acme/full-config"]

    @pytest.mark.asyncio
    async def test_non_200_raises(self) -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        provider = HttpConfigProvider("https://config.example/{client_id}", http)
        with pytest.raises(ConfigurationError, match="HTTP 503"):
            await provider.get("acme")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda r: httpx.Response(200, text="<html>"),
        ))
        provider = HttpConfigProvider("https://config.example/{client_id}", http)
        with pytest.raises(ConfigurationError, match="invalid JSON"):
            await provider.get("acme")


class TestCachingConfigProvider:
    @pytest.mark.asyncio
    async def test_serves_from_cache_within_ttl(self) -> None:
        inner = AsyncMock()
        inner.get = AsyncMock(return_value=make_client_config())
        provider = CachingConfigProvider(inner, ttl_seconds=60)

        first = await provider.get("acme")
        second = await provider.get("acme")

        assert first is second
        inner.get.assert_awaited_once_with("acme")

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self) -> None:
        inner = AsyncMock()
        inner.get = AsyncMock(return_value=make_client_config())
        provider = CachingConfigProvider(inner, ttl_seconds=60)

        await provider.get("acme")
        provider.invalidate("acme")
        await provider.get("acme")

        assert inner.get.await_count == 2

    @pytest.mark.asyncio
    async def test_errors_not_cached(self) -> None:
        inner = AsyncMock()
        inner.get = AsyncMock(side_effect=[ConfigurationError("down"), make_client_config()])
        provider = CachingConfigProvider(inner, ttl_seconds=60)

        with pytest.raises(ConfigurationError):
            await provider.get("acme")
        assert (await provider.get("acme")).client_id == "acme"


def test_config_documents_are_json_round_trippable() -> None:
    view = make_client_config().public_view()
    assert json.loads(json.dumps(view)) == view
