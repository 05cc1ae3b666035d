"""Build the capability-provider bundle for a tenant."""

from __future__ import annotations

import logging

import httpx

from orchestrator.config.client_config import ClientConfig, ConfigurationError
from orchestrator.pipeline.providers import CapabilityProviders, RateLimiter, UsageTracker
from orchestrator.providers.classifiers import (
    KeywordIntentClassifier,
    KeywordRelevanceClassifier,
    XAIIntentClassifier,
    XAIRelevanceClassifier,
)
from orchestrator.providers.rate_limiter import SlidingWindowRateLimiter
from orchestrator.providers.reply import EchoReplyGenerator, XAIReplyGenerator
from orchestrator.providers.usage import InMemoryUsageTracker, UsageStore
from orchestrator.providers.webhook import HttpWebhookDispatcher, NullWebhookDispatcher
from orchestrator.providers.xai import DEFAULT_XAI_BASE_URL, XAIClient

logger = logging.getLogger(__name__)


def build_providers(
    config: ClientConfig,
    *,
    http_client: httpx.AsyncClient,
    rate_limiter: RateLimiter,
    usage_tracker: UsageTracker,
    xai_base_url: str = DEFAULT_XAI_BASE_URL,
) -> CapabilityProviders:
    """Wire providers for ``config``.

    The rate limiter and usage tracker are process-wide and shared across
    tenants; they key their state by client id. The local-dev API key
    selects offline classifiers and an echo reply generator.

    Raises:
        ConfigurationError: If the tenant has no xAI API key.
    """
    if not config.xai_api_key:
        raise ConfigurationError("xAI API key is not configured", config.client_id)

    if config.is_test_mode:
        logger.info("Client %s uses the local-dev API key; AI calls are mocked", config.client_id)
        return CapabilityProviders(
            rate_limiter=rate_limiter,
            relevance_classifier=KeywordRelevanceClassifier(),
            intent_classifier=KeywordIntentClassifier(),
            webhook_dispatcher=NullWebhookDispatcher(),
            usage_tracker=usage_tracker,
            reply_generator=EchoReplyGenerator(),
        )

    xai = XAIClient(config.xai_api_key, http_client, base_url=xai_base_url)
    return CapabilityProviders(
        rate_limiter=rate_limiter,
        relevance_classifier=XAIRelevanceClassifier(xai),
        intent_classifier=XAIIntentClassifier(xai),
        webhook_dispatcher=HttpWebhookDispatcher(http_client),
        usage_tracker=usage_tracker,
        reply_generator=XAIReplyGenerator(xai),
    )


class ProviderRegistry:
    """Caches one provider bundle per tenant and API key."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        rate_limiter: RateLimiter | None = None,
        usage_tracker: UsageStore | None = None,
        xai_base_url: str = DEFAULT_XAI_BASE_URL,
    ) -> None:
        self.http_client = http_client
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.usage_tracker: UsageStore = usage_tracker or InMemoryUsageTracker()
        self._xai_base_url = xai_base_url
        self._bundles: dict[tuple[str, str | None], CapabilityProviders] = {}

    def get(self, config: ClientConfig) -> CapabilityProviders:
        key = (config.client_id, config.xai_api_key)
        bundle = self._bundles.get(key)
        if bundle is None:
            bundle = build_providers(
                config,
                http_client=self.http_client,
                rate_limiter=self.rate_limiter,
                usage_tracker=self.usage_tracker,
                xai_base_url=self._xai_base_url,
            )
            self._bundles[key] = bundle
        return bundle
