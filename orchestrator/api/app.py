"""FastAPI application exposing the chat widget, platform webhooks and admin API."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from orchestrator.api.auth_middleware import AdminAuthMiddleware
from orchestrator.audit.logger import AuditLogger
from orchestrator.channels.base import ChannelAdapter
from orchestrator.channels.chat import ChatWidgetAdapter
from orchestrator.channels.meta import FacebookAdapter, InstagramAdapter
from orchestrator.channels.replay_protection import ReplayProtection
from orchestrator.channels.twitter import TwitterAdapter
from orchestrator.config.client_config import ClientConfig, ConfigurationError
from orchestrator.config.loader import (
    CachingConfigProvider,
    ConfigProvider,
    FileConfigProvider,
    HttpConfigProvider,
)
from orchestrator.config.settings import Settings
from orchestrator.models import AuditEvent, AuditEventType, RiskLevel
from orchestrator.pipeline.models import OffTopic, PipelineResult, RateLimited, result_text
from orchestrator.pipeline.runner import GMCRPipeline, StageTimeouts
from orchestrator.providers.factory import ProviderRegistry
from orchestrator.providers.rate_limiter import SQLiteRateLimiter
from orchestrator.providers.state_db import StateDB
from orchestrator.providers.usage import SQLiteUsageTracker

logger = logging.getLogger(__name__)

CHANNEL_ADAPTERS = {
    "instagram": InstagramAdapter,
    "facebook": FacebookAdapter,
    "twitter": TwitterAdapter,
}


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = Settings.from_env()
    http_client = httpx.AsyncClient(timeout=30.0)

    overrides: dict[str, Any] = {}
    if settings.xai_api_key:
        overrides["xai_api_key"] = settings.xai_api_key
    inner: ConfigProvider
    if settings.client_config_url:
        inner = HttpConfigProvider(settings.client_config_url, http_client, overrides)
    else:
        inner = FileConfigProvider(settings.client_config_dir or "config/clients", overrides)
    config_provider = CachingConfigProvider(inner, settings.config_cache_ttl)

    state_db = StateDB(settings.state_db_path) if settings.state_db_path else None
    registry = ProviderRegistry(
        http_client,
        rate_limiter=SQLiteRateLimiter(state_db) if state_db else None,
        usage_tracker=SQLiteUsageTracker(state_db) if state_db else None,
        xai_base_url=settings.xai_base_url,
    )
    audit_logger = (
        AuditLogger.from_env(settings.audit_log_path) if settings.audit_log_path else None
    )
    replay = ReplayProtection(settings.replay_db_path) if settings.replay_db_path else None

    async def shutdown() -> None:
        await http_client.aclose()
        if state_db:
            state_db.close()
        if replay:
            replay.close()

    return create_app(
        config_provider,
        registry,
        default_client_id=settings.default_client_id,
        audit_logger=audit_logger,
        replay_protection=replay,
        admin_token=settings.admin_token,
        cors_origins=settings.cors_origins,
        shutdown=shutdown,
    )


def create_app(
    config_provider: ConfigProvider,
    registry: ProviderRegistry,
    *,
    default_client_id: str = "default",
    audit_logger: AuditLogger | None = None,
    replay_protection: ReplayProtection | None = None,
    admin_token: str | None = None,
    cors_origins: list[str] | None = None,
    timeouts: StageTimeouts | None = None,
    shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    """Create the orchestrator app.

    Admin routes are only registered when ``admin_token`` is set.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if shutdown:
            await shutdown()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    chat_adapter: ChannelAdapter = ChatWidgetAdapter()

    def audit(event: AuditEvent) -> None:
        if not audit_logger:
            return
        try:
            audit_logger.log(event)
        except OSError:
            logger.exception("Failed to write audit event %s", event.event_type.value)

    async def load_tenant(client_id: str) -> tuple[ClientConfig, GMCRPipeline]:
        config = await config_provider.get(client_id)
        providers = registry.get(config)
        return config, GMCRPipeline(providers, timeouts=timeouts, audit_logger=audit_logger)

    def resolve_client_id(request: Request, payload: dict[str, Any] | None = None) -> str:
        return (
            request.headers.get("x-client-id")
            or (payload or {}).get("clientId")
            or request.query_params.get("clientId")
            or default_client_id
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc,
        )
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/config")
    async def public_config(request: Request) -> JSONResponse:
        try:
            config = await config_provider.get(resolve_client_id(request))
        except ConfigurationError as e:
            logger.error("Config load failed: %s", e)
            return JSONResponse({"error": "Failed to load client config"}, status_code=500)
        return JSONResponse(config.public_view())

    @app.post("/chat")
    async def chat(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        try:
            inbound = chat_adapter.to_canonical_input(payload)[0]
        except ValidationError as e:
            return JSONResponse(
                {"error": "Invalid chat request", "details": _validation_messages(e)},
                status_code=400,
            )

        try:
            config, pipeline = await load_tenant(resolve_client_id(request, payload))
        except ConfigurationError as e:
            logger.error("Chat request failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

        if "chat" not in config.enabled_features:
            return JSONResponse({"error": "Chat is not enabled"}, status_code=404)

        result = await pipeline.run(inbound.to_pipeline_input(config))
        return _chat_response(result, inbound.session_id, inbound.input_type.value)

    @app.get("/webhook/{platform}")
    async def webhook_verify(platform: str, request: Request) -> Response:
        if platform not in CHANNEL_ADAPTERS:
            return PlainTextResponse("Not found", status_code=404)
        try:
            config = await config_provider.get(resolve_client_id(request))
        except ConfigurationError as e:
            logger.error("Error verifying %s webhook: %s", platform, e)
            return PlainTextResponse("Verification error", status_code=500)
        if not config.platform_enabled(platform):
            return PlainTextResponse("Not found", status_code=404)

        adapter: ChannelAdapter = CHANNEL_ADAPTERS[platform].from_config(
            config, registry.http_client,
        )
        verification = adapter.handle_verification(dict(request.query_params))
        if verification is None:
            return PlainTextResponse("Bad request", status_code=400)

        audit(AuditEvent(
            event_type=AuditEventType.WEBHOOK_VERIFICATION,
            client_id=config.client_id,
            source_ip=request.client.host if request.client else None,
            action=f"{platform}_verify",
            result="success" if verification.status_code == 200 else "failure",
            risk_level=RiskLevel.INFO if verification.status_code == 200 else RiskLevel.MEDIUM,
        ))
        return Response(
            content=verification.content,
            status_code=verification.status_code,
            media_type=verification.media_type,
        )

    @app.post("/webhook/{platform}")
    async def webhook_receive(platform: str, request: Request) -> Response:
        if platform not in CHANNEL_ADAPTERS:
            return PlainTextResponse("Not found", status_code=404)
        try:
            config, pipeline = await load_tenant(resolve_client_id(request))
        except ConfigurationError as e:
            logger.error("%s webhook error: %s", platform, e)
            return PlainTextResponse("Error processing webhook", status_code=500)
        if not config.platform_enabled(platform):
            return PlainTextResponse("Not found", status_code=404)

        adapter: ChannelAdapter = CHANNEL_ADAPTERS[platform].from_config(
            config, registry.http_client,
        )
        body = await request.body()
        if not adapter.verify_signature(dict(request.headers), body):
            audit(AuditEvent(
                event_type=AuditEventType.WEBHOOK_REJECTED,
                client_id=config.client_id,
                source_ip=request.client.host if request.client else None,
                action=f"{platform}_webhook",
                result="failure",
                risk_level=RiskLevel.HIGH,
                details={"reason": "invalid_signature"},
            ))
            return PlainTextResponse("Invalid signature", status_code=401)

        try:
            payload = json.loads(body)
        except ValueError:
            return PlainTextResponse("Invalid JSON body", status_code=400)
        if not isinstance(payload, dict):
            return PlainTextResponse("Invalid payload", status_code=400)

        for inbound in adapter.to_canonical_input(payload):
            if replay_protection and not replay_protection.check(platform, inbound.message_id):
                logger.info("Skipping duplicate %s message %s", platform, inbound.message_id)
                continue
            result = await pipeline.run(inbound.to_pipeline_input(config))
            delivered = await adapter.send_reply(inbound.sender_id, result_text(result))
            audit(AuditEvent(
                event_type=AuditEventType.CHANNEL_DELIVERY,
                client_id=config.client_id,
                session_id=inbound.session_id,
                action=f"{platform}_reply",
                result="success" if delivered else "failure",
                risk_level=RiskLevel.INFO if delivered else RiskLevel.LOW,
                details={"outcome": result.type},
            ))

        return PlainTextResponse("OK", status_code=200)

    if admin_token:

        @app.get("/admin/usage/{session_id}")
        async def admin_usage(session_id: str, request: Request) -> JSONResponse:
            client_id = resolve_client_id(request)
            counts = registry.usage_tracker.get_usage(client_id, session_id)
            return JSONResponse({"clientId": client_id, "sessionId": session_id, "usage": counts})

        app.add_middleware(AdminAuthMiddleware, token=admin_token, audit_logger=audit_logger)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Client-Id"],
        max_age=86400,
    )

    return app


def _chat_response(result: PipelineResult, session_id: str, input_type: str) -> JSONResponse:
    if isinstance(result, RateLimited):
        return JSONResponse({"error": result.message}, status_code=429)
    if isinstance(result, OffTopic):
        return JSONResponse({
            "reply": result.message,
            "sessionId": session_id,
            "inputType": input_type,
        })

    diagnostics = result.diagnostics
    return JSONResponse({
        "reply": result.text,
        "sessionId": result.session_id,
        "inputType": result.input_type.value,
        "relevance": diagnostics.relevance.model_dump(
            mode="json", by_alias=True, exclude_none=True,
        ),
        "intent": diagnostics.intent.model_dump(mode="json", exclude_none=True),
        "knowledgeUpdated": diagnostics.knowledge_updated,
        "webhookSent": diagnostics.webhook_sent,
        "usageTracked": diagnostics.usage_tracked,
    })


def _validation_messages(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    ]
