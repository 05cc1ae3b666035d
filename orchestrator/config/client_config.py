"""Per-tenant client configuration.

A ``ClientConfig`` is loaded once per request (or served from cache) and is
shared read-only across concurrent pipeline runs for the same tenant. The
model is frozen so no stage can mutate it.

Config documents use snake_case keys; the camelCase keys emitted by older
config services (``xaiApiKey``, ``webhookUrl``, ...) are accepted as aliases.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

# Local-dev key: selects the offline reference providers instead of xAI.
TEST_API_KEY = "test-key-for-local-dev"

DEFAULT_TRAIN_MARKER = "TRAIN:"

SECRET_FIELDS = frozenset({
    "xai_api_key",
    "meta_app_secret",
    "meta_page_access_token",
    "twitter_consumer_secret",
    "twitter_access_token",
    "instagram_verify_token",
    "facebook_verify_token",
})


class ConfigurationError(Exception):
    """Raised when a tenant config is malformed or lacks a required credential."""

    def __init__(self, message: str, client_id: str | None = None) -> None:
        self.client_id = client_id
        super().__init__(message)


def _alias(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


class BusinessSynopsis(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str = ""
    key_areas: list[str] = Field(default_factory=list)
    mission: str | None = None


class ClientConfig(BaseModel):
    """Immutable per-tenant configuration record."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    # identity
    client_id: str = Field(min_length=1)
    brand_name: str = ""
    brand_voice: str = ""
    default_tone: str = "professional"
    business_synopsis: BusinessSynopsis = Field(default_factory=BusinessSynopsis)

    # AI provider
    xai_api_key: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("xai_api_key", "xaiApiKey"),
    )
    xai_collection: str | None = _alias("xai_collection", "xaiCollection")
    model: str = "grok-3"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, gt=0)
    enhanced_prompt_additions: str = Field(
        default="",
        validation_alias=AliasChoices("enhanced_prompt_additions", "enhancedPromptAdditions"),
    )

    # rate limiting
    rate_limit_max: int = Field(default=1, ge=0)
    rate_limit_ttl: int = Field(default=3600, gt=0)
    rate_limit_key_prefix: str = "rate_limit:"
    rate_limit_on_error: Literal["deny", "allow"] = "deny"

    # feature flags
    enabled_features: list[str] = Field(default_factory=lambda: ["chat"])
    enabled_social_platforms: list[str] = Field(default_factory=list)
    enabled_roles: list[str] = Field(default_factory=list)

    # prompt assembly
    prompt_template: str | None = _alias("prompt_template", "promptTemplate")
    social_prompt: str = (
        "You are responding on social media. "
        "Keep responses professional, engaging, and concise."
    )
    train_marker: str = Field(default=DEFAULT_TRAIN_MARKER, min_length=1)

    webhook_url: str | None = _alias("webhook_url", "webhookUrl")

    # channel credentials
    instagram_verify_token: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("instagram_verify_token", "instagramVerifyToken"),
    )
    facebook_verify_token: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("facebook_verify_token", "facebookVerifyToken"),
    )
    instagram_account_id: str | None = None
    meta_app_secret: str | None = Field(default=None, repr=False)
    meta_page_access_token: str | None = Field(default=None, repr=False)
    twitter_account_id: str | None = None
    twitter_consumer_secret: str | None = Field(default=None, repr=False)
    twitter_access_token: str | None = Field(default=None, repr=False)

    @property
    def is_test_mode(self) -> bool:
        return self.xai_api_key == TEST_API_KEY

    def platform_enabled(self, platform: str) -> bool:
        return platform in self.enabled_social_platforms

    def public_view(self) -> dict[str, Any]:
        """Config as JSON-safe dict with every credential removed."""
        return self.model_dump(mode="json", exclude=set(SECRET_FIELDS))


def parse_client_config(data: Any, source: str = "<config>") -> ClientConfig:
    """Validate a decoded config document, mapping failures to ConfigurationError."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Client config from {source} must be a JSON object")
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid client config from {source}: {e.error_count()} error(s)\n{e}",
            client_id=data.get("client_id"),
        ) from e


def merge_overrides(raw: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Fill values the document leaves empty (e.g. the xAI key injected from env)."""
    merged = dict(raw)
    for key, value in overrides.items():
        if value is not None and not merged.get(key):
            merged[key] = value
    return merged


def load_client_config(
    path: str | Path,
    overrides: dict[str, Any] | None = None,
    client_id: str | None = None,
) -> ClientConfig:
    """Load and validate a ClientConfig JSON file.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Client config not found: {config_path}", client_id=client_id)
    try:
        raw = json.loads(config_path.read_bytes())
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid JSON in client config {config_path}: {e}", client_id=client_id,
        ) from e
    if overrides and isinstance(raw, dict):
        raw = merge_overrides(raw, overrides)
    return parse_client_config(raw, source=str(config_path))
