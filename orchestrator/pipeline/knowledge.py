"""Knowledge-update detection: a message starting with the training marker
(``TRAIN:`` by default, case-insensitive) carries knowledge to store."""

from __future__ import annotations

from orchestrator.config.client_config import DEFAULT_TRAIN_MARKER
from orchestrator.pipeline.models import KnowledgeUpdateResult


def detect_knowledge_update(
    message: str, marker: str = DEFAULT_TRAIN_MARKER,
) -> KnowledgeUpdateResult:
    """Strip the training marker and return the remaining knowledge.

    Pure function: the same message always yields the same result.
    """
    if not marker:
        return KnowledgeUpdateResult(updated=False)
    stripped = message.lstrip()
    if stripped[: len(marker)].upper() != marker.upper():
        return KnowledgeUpdateResult(updated=False)
    return KnowledgeUpdateResult(updated=True, knowledge=stripped[len(marker):].strip())
