"""Relevance and intent classifiers.

Live classifiers ask xAI for a JSON verdict; keyword classifiers are the
offline reference implementations used in local-dev mode and tests. Both
kinds return the documented safe default instead of raising.
"""

from __future__ import annotations

import logging
import re

from orchestrator.config.client_config import ClientConfig
from orchestrator.pipeline.models import IntentLabel, IntentResult, RelevanceResult
from orchestrator.providers.xai import ProviderError, XAIClient, parse_json_reply

logger = logging.getLogger(__name__)

CLASSIFIER_TEMPERATURE = 0.1

RELEVANCE_SYSTEM_PROMPT = (
    "You are a relevance classifier. Analyze the user's message and determine "
    "if it's business-related (e.g., work, professional inquiries, sales, services) "
    "for {brand}. Respond with JSON: "
    '{{"isRelevant": true/false, "confidence": 0.0-1.0}}'
)

INTENT_SYSTEM_PROMPT = (
    "You are an intent detector. Classify the user's message into one of these "
    "roles: {roles}. Respond with JSON: "
    '{{"intent": "role", "confidence": 0.0-1.0}}'
)

_WORD_RE = re.compile(r"[a-z0-9']+")

_BASE_RELEVANCE_KEYWORDS = frozenset({
    "business", "work", "service", "services", "price", "pricing", "cost", "quote",
    "hours", "open", "book", "booking", "appointment", "order", "orders", "refund",
    "refunds", "support", "help", "account", "invoice", "demo", "product", "products",
    "delivery", "shipping", "contact", "train",
})

# Checked in order; the first rule with a matching keyword wins.
_INTENT_RULES: tuple[tuple[IntentLabel, frozenset[str]], ...] = (
    (IntentLabel.EXISTING_CLIENT, frozenset({
        "my account", "my order", "my subscription", "invoice", "renew", "already",
    })),
    (IntentLabel.LEAD, frozenset({
        "pricing", "quote", "demo", "interested", "sign up", "trial",
    })),
    (IntentLabel.CUSTOMER, frozenset({
        "buy", "purchase", "order", "book", "hours", "refund", "support",
    })),
    (IntentLabel.PROSPECT, frozenset({
        "learn more", "what do you", "how does", "tell me about", "information",
    })),
)


def _words(text: str) -> set[str]:
    return set(_WORD_RE.findall(text.lower()))


class XAIRelevanceClassifier:
    """Asks xAI whether a message is business-related; fails open."""

    def __init__(self, client: XAIClient) -> None:
        self._client = client

    async def classify(self, message: str, config: ClientConfig) -> RelevanceResult:
        prompt = RELEVANCE_SYSTEM_PROMPT.format(brand=config.brand_name or "this business")
        try:
            content = await self._client.complete(
                [
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": message},
                ],
                model=config.model,
                temperature=CLASSIFIER_TEMPERATURE,
            )
            return parse_json_reply(content, RelevanceResult)
        except ProviderError as e:
            logger.warning("Relevance classification failed for %s: %s", config.client_id, e)
            return RelevanceResult.fail_open(str(e))


class XAIIntentClassifier:
    """Asks xAI which role the sender plays; unknown roles map to ``other``."""

    def __init__(self, client: XAIClient) -> None:
        self._client = client

    async def classify(self, message: str, config: ClientConfig) -> IntentResult:
        roles = ", ".join(label.value for label in IntentLabel)
        try:
            content = await self._client.complete(
                [
                    {"role": "system", "content": INTENT_SYSTEM_PROMPT.format(roles=roles)},
                    {"role": "user", "content": message},
                ],
                model=config.model,
                temperature=CLASSIFIER_TEMPERATURE,
            )
            return parse_json_reply(content, IntentResult)
        except ProviderError as e:
            logger.warning("Intent detection failed for %s: %s", config.client_id, e)
            return IntentResult.default(str(e))


class KeywordRelevanceClassifier:
    """Offline relevance check against business keywords and the tenant's own terms."""

    def __init__(self, extra_keywords: frozenset[str] = frozenset()) -> None:
        self._keywords = _BASE_RELEVANCE_KEYWORDS | {k.lower() for k in extra_keywords}

    def _tenant_keywords(self, config: ClientConfig) -> set[str]:
        terms = _words(config.brand_name)
        for area in config.business_synopsis.key_areas:
            terms |= {w for w in _words(area) if len(w) > 3}
        return terms

    async def classify(self, message: str, config: ClientConfig) -> RelevanceResult:
        words = _words(message)
        matched = words & (self._keywords | self._tenant_keywords(config))
        return RelevanceResult(is_relevant=bool(matched), confidence=0.8)


class KeywordIntentClassifier:
    """Offline intent detection by phrase rules."""

    async def classify(self, message: str, config: ClientConfig) -> IntentResult:
        text = " ".join(_WORD_RE.findall(message.lower()))
        padded = f" {text} "
        for label, phrases in _INTENT_RULES:
            if any(f" {phrase} " in padded for phrase in phrases):
                return IntentResult(intent=label, confidence=0.9)
        return IntentResult.default()
