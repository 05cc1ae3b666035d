"""GMCR pipeline: Generate/Moderate/Classify/Respond.

Runs the capability providers in a fixed order against one PipelineContext
and always produces exactly one PipelineResult.

Pipeline stages:
1. Rate limit (gate)
2. Business relevance (gate)
3. Intent detection
4. Knowledge update detection (local)
5. Webhook dispatch (best-effort)
6. Usage tracking (best-effort)
7. Reply generation

Only stages 1-2 can end a run early. Stages 3-7 fall back to documented
defaults on any provider error or timeout, and the run as a whole is wrapped
so no exception ever reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from orchestrator.models import AuditEvent, AuditEventType, RiskLevel
from orchestrator.pipeline.knowledge import detect_knowledge_update
from orchestrator.pipeline.models import (
    FALLBACK_REPLY,
    Diagnostics,
    IntentResult,
    OffTopic,
    PipelineContext,
    PipelineInput,
    PipelineResult,
    RateLimited,
    RateLimitResult,
    RelevanceResult,
    Replied,
    ReplyRequest,
    ReplyResult,
    UsageResult,
    WebhookResult,
)

if TYPE_CHECKING:
    from orchestrator.audit.logger import AuditLogger
    from orchestrator.pipeline.providers import CapabilityProviders

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class StageTimeouts:
    """Per-call timeouts in seconds. A timeout counts as a provider error."""

    rate_limit: float = 5.0
    classifier: float = 10.0
    reply: float = 10.0
    webhook: float = 3.0
    usage: float = 3.0


class StageError(Exception):
    """A provider call failed, timed out, or returned an unusable shape."""

    def __init__(self, stage: str, reason: str) -> None:
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage}: {reason}")


class GMCRPipeline:
    """Orchestrates the seven GMCR stages for one inbound message at a time.

    Instances hold no per-request state and can serve concurrent runs.
    """

    def __init__(
        self,
        providers: CapabilityProviders,
        timeouts: StageTimeouts | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._providers = providers
        self._timeouts = timeouts or StageTimeouts()
        self._audit = audit_logger

    async def run(self, pipeline_input: PipelineInput) -> PipelineResult:
        """Run every stage for ``pipeline_input``; never raises."""
        ctx = PipelineContext(input=pipeline_input)
        try:
            return await self._run_stages(ctx)
        except Exception as e:
            logger.exception(
                "GMCR pipeline failed for session %s", pipeline_input.session_id,
            )
            self._log_event(
                ctx,
                AuditEventType.PIPELINE_ERROR,
                action="pipeline",
                result="failure",
                risk_level=RiskLevel.MEDIUM,
                details={"error": _describe(e)},
            )
            return self._finalize(ctx, FALLBACK_REPLY, error=_describe(e))

    async def _run_stages(self, ctx: PipelineContext) -> PipelineResult:
        config = ctx.client_config

        # Stage 1: Rate limit
        ctx.rate_limit_result = await self._check_rate_limit(ctx)
        if not ctx.rate_limit_result.allowed:
            self._log_event(
                ctx,
                AuditEventType.RATE_LIMITED,
                action="rate_limit",
                result="blocked",
                risk_level=RiskLevel.LOW,
                details={"error": ctx.rate_limit_result.error},
            )
            return RateLimited()

        # Stage 2: Business relevance
        ctx.relevance_result = await self._classify_relevance(ctx)
        if not ctx.relevance_result.is_relevant:
            self._log_event(
                ctx,
                AuditEventType.OFF_TOPIC,
                action="relevance",
                result="blocked",
                risk_level=RiskLevel.INFO,
                details={"confidence": ctx.relevance_result.confidence},
            )
            return OffTopic()

        # Stage 3: Intent detection
        ctx.intent_result = await self._classify_intent(ctx)

        # Stage 4: Knowledge update
        ctx.knowledge_update_result = detect_knowledge_update(
            ctx.message, config.train_marker,
        )
        if ctx.knowledge_update_result.updated:
            logger.info("Knowledge update detected for client %s", config.client_id)
            self._log_event(
                ctx,
                AuditEventType.KNOWLEDGE_UPDATE,
                action="knowledge_update",
                result="success",
                risk_level=RiskLevel.INFO,
                details={"knowledge": ctx.knowledge_update_result.knowledge},
            )

        # Stage 5: Webhook dispatch
        ctx.webhook_result = await self._dispatch_webhook(ctx)

        # Stage 6: Usage tracking
        ctx.usage_result = await self._track_usage(ctx)

        # Stage 7: Reply generation
        ctx.reply_result = await self._generate_reply(ctx)

        self._log_event(
            ctx,
            AuditEventType.REPLY,
            action="reply",
            result="degraded" if ctx.reply_result.error else "success",
            risk_level=RiskLevel.INFO,
            details={
                "intent": ctx.intent_result.intent.value,
                "degraded": list(ctx.degraded),
            },
        )
        return self._finalize(ctx, ctx.reply_result.reply, error=ctx.reply_result.error)

    # --- Stages ---

    async def _check_rate_limit(self, ctx: PipelineContext) -> RateLimitResult:
        config = ctx.client_config
        try:
            return await self._call(
                "rate_limit",
                lambda: self._providers.rate_limiter.check(ctx.session_id, config),
                self._timeouts.rate_limit,
                RateLimitResult,
            )
        except StageError as e:
            self._degrade(ctx, e)
            allowed = config.rate_limit_on_error == "allow"
            return RateLimitResult(allowed=allowed, remaining=0, error=e.reason)

    async def _classify_relevance(self, ctx: PipelineContext) -> RelevanceResult:
        try:
            result = await self._call(
                "relevance",
                lambda: self._providers.relevance_classifier.classify(
                    ctx.message, ctx.client_config,
                ),
                self._timeouts.classifier,
                RelevanceResult,
            )
        except StageError as e:
            self._degrade(ctx, e)
            return RelevanceResult.fail_open(e.reason)
        if result.error:
            self._degrade(ctx, StageError("relevance", result.error))
        return result

    async def _classify_intent(self, ctx: PipelineContext) -> IntentResult:
        try:
            result = await self._call(
                "intent",
                lambda: self._providers.intent_classifier.classify(
                    ctx.message, ctx.client_config,
                ),
                self._timeouts.classifier,
                IntentResult,
            )
        except StageError as e:
            self._degrade(ctx, e)
            return IntentResult.default(e.reason)
        if result.error:
            self._degrade(ctx, StageError("intent", result.error))
        return result

    async def _dispatch_webhook(self, ctx: PipelineContext) -> WebhookResult:
        url = ctx.client_config.webhook_url
        if not url:
            return WebhookResult(sent=False)
        payload = {"message": ctx.message, "sessionId": ctx.session_id}
        try:
            return await self._call(
                "webhook",
                lambda: self._providers.webhook_dispatcher.send(url, payload),
                self._timeouts.webhook,
                WebhookResult,
            )
        except StageError as e:
            self._degrade(ctx, e)
            return WebhookResult(sent=False, url=url, error=e.reason)

    async def _track_usage(self, ctx: PipelineContext) -> UsageResult:
        action = ctx.input.usage_action
        try:
            return await self._call(
                "usage",
                lambda: self._providers.usage_tracker.record(
                    ctx.session_id, ctx.client_config, action,
                ),
                self._timeouts.usage,
                UsageResult,
            )
        except StageError as e:
            self._degrade(ctx, e)
            return UsageResult(tracked=False, action=action, error=e.reason)

    async def _generate_reply(self, ctx: PipelineContext) -> ReplyResult:
        assert ctx.intent_result is not None
        assert ctx.knowledge_update_result is not None
        request = ReplyRequest(
            input_type=ctx.input_type,
            message=ctx.message,
            session_id=ctx.session_id,
            client_config=ctx.client_config,
            intent=ctx.intent_result,
            knowledge=ctx.knowledge_update_result.knowledge,
        )
        try:
            result = await self._call(
                "reply",
                lambda: self._providers.reply_generator.generate(request),
                self._timeouts.reply,
                ReplyResult,
            )
        except StageError as e:
            self._degrade(ctx, e)
            return ReplyResult(reply=FALLBACK_REPLY, error=e.reason)
        if not result.reply.strip():
            self._degrade(ctx, StageError("reply", "empty reply"))
            return ReplyResult(reply=FALLBACK_REPLY, error="empty reply")
        if result.error:
            self._degrade(ctx, StageError("reply", result.error))
        return result

    # --- Helpers ---

    async def _call(
        self,
        stage: str,
        call: Callable[[], Awaitable[Any]],
        timeout: float,
        model: type[ModelT],
    ) -> ModelT:
        """Await a provider call under ``timeout`` and validate its shape."""
        try:
            value = await asyncio.wait_for(call(), timeout=timeout)
        except TimeoutError as e:
            raise StageError(stage, f"timed out after {timeout:g}s") from e
        except Exception as e:
            raise StageError(stage, _describe(e)) from e
        if isinstance(value, model):
            return value
        try:
            return model.model_validate(value)
        except Exception as e:
            raise StageError(stage, f"invalid result: {_describe(e)}") from e

    def _degrade(self, ctx: PipelineContext, error: StageError) -> None:
        ctx.degraded.append(error.stage)
        logger.warning(
            "Stage %s degraded for session %s: %s",
            error.stage, ctx.session_id, error.reason,
        )
        self._log_event(
            ctx,
            AuditEventType.PROVIDER_DEGRADED,
            action=error.stage,
            result="degraded",
            risk_level=RiskLevel.LOW,
            details={"error": error.reason},
        )

    def _finalize(
        self, ctx: PipelineContext, text: str, error: str | None = None,
    ) -> Replied:
        diagnostics = Diagnostics(
            relevance=ctx.relevance_result or RelevanceResult.fail_open("not evaluated"),
            intent=ctx.intent_result or IntentResult.default(),
            knowledge_updated=bool(
                ctx.knowledge_update_result and ctx.knowledge_update_result.updated
            ),
            knowledge=(
                ctx.knowledge_update_result.knowledge
                if ctx.knowledge_update_result else None
            ),
            webhook_sent=bool(ctx.webhook_result and ctx.webhook_result.sent),
            usage_tracked=bool(ctx.usage_result and ctx.usage_result.tracked),
            rate_limit_remaining=(
                ctx.rate_limit_result.remaining if ctx.rate_limit_result else None
            ),
            degraded=list(ctx.degraded),
            error=error,
        )
        return Replied(
            text=text or FALLBACK_REPLY,
            session_id=ctx.session_id,
            input_type=ctx.input_type,
            diagnostics=diagnostics,
        )

    def _log_event(
        self,
        ctx: PipelineContext,
        event_type: AuditEventType,
        action: str,
        result: str,
        risk_level: RiskLevel,
        details: dict[str, object] | None = None,
    ) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=event_type,
                client_id=ctx.client_config.client_id,
                session_id=ctx.session_id,
                action=action,
                result=result,
                risk_level=risk_level,
                details={"input_type": ctx.input_type.value, **(details or {})},
            ))
        except OSError:
            logger.exception("Failed to write audit event %s", event_type.value)


def _describe(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


async def run_pipeline(
    pipeline_input: PipelineInput,
    providers: CapabilityProviders,
    *,
    timeouts: StageTimeouts | None = None,
    audit_logger: AuditLogger | None = None,
) -> PipelineResult:
    """Functional form of ``GMCRPipeline(...).run(pipeline_input)``."""
    pipeline = GMCRPipeline(providers, timeouts=timeouts, audit_logger=audit_logger)
    return await pipeline.run(pipeline_input)
