"""Process-level settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Orchestrator process settings.

    Tenant-specific values live in ClientConfig; these cover where configs
    come from and where shared state is kept.
    """

    default_client_id: str = "default"
    client_config_dir: str | None = "config/clients"
    client_config_url: str | None = None
    config_cache_ttl: float = 300.0
    xai_api_key: str | None = None
    xai_base_url: str = "https://api.x.ai/v1"
    state_db_path: str | None = None
    admin_token: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    audit_log_path: str | None = None
    replay_db_path: str | None = None

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            default_client_id=os.environ.get("ORCHESTRATOR_DEFAULT_CLIENT", "default"),
            client_config_dir=os.environ.get("CLIENT_CONFIG_DIR", "config/clients"),
            client_config_url=os.environ.get("CLIENT_CONFIG_URL") or None,
            config_cache_ttl=float(os.environ.get("CONFIG_CACHE_TTL", "300")),
            xai_api_key=os.environ.get("XAI_API_KEY") or None,
            xai_base_url=os.environ.get("XAI_BASE_URL", "https://api.x.ai/v1"),
            state_db_path=os.environ.get("STATE_DB_PATH") or None,
            admin_token=os.environ.get("ADMIN_TOKEN") or None,
            cors_origins=_split_csv(os.environ.get("CORS_ORIGINS", "*")),
            audit_log_path=os.environ.get("AUDIT_LOG_PATH") or None,
            replay_db_path=os.environ.get("REPLAY_DB_PATH") or None,
        )
