"""Knowledge status state machine.

The status column is authoritative; every component changes it through these
functions so the stage invariants hold:

    draft -> notion_referenced -> content_analyzed -> article_generated -> article_published
      \\________________________________^  (non-Notion sources only)

``error`` is reachable from any state; only ``reset`` leaves it. Functions
mutate the ORM row in place. The caller commits, in the same transaction as
the stage's other writes.
"""

import logging

from knowledge_pipeline.db.tables import ArticleRow, KnowledgeRow
from knowledge_pipeline.errors import InvalidTransition
from knowledge_pipeline.models.knowledge import KnowledgeStatus, SourceType

logger = logging.getLogger(__name__)

_FORWARD: dict[KnowledgeStatus, frozenset[KnowledgeStatus]] = {
    KnowledgeStatus.DRAFT: frozenset(
        {KnowledgeStatus.NOTION_REFERENCED, KnowledgeStatus.CONTENT_ANALYZED}
    ),
    KnowledgeStatus.NOTION_REFERENCED: frozenset({KnowledgeStatus.CONTENT_ANALYZED}),
    KnowledgeStatus.CONTENT_ANALYZED: frozenset({KnowledgeStatus.ARTICLE_GENERATED}),
    KnowledgeStatus.ARTICLE_GENERATED: frozenset({KnowledgeStatus.ARTICLE_PUBLISHED}),
    KnowledgeStatus.ARTICLE_PUBLISHED: frozenset(),
    KnowledgeStatus.ERROR: frozenset(),
}

# Statuses from which the analysis stage may start
ANALYZABLE = frozenset({KnowledgeStatus.DRAFT, KnowledgeStatus.NOTION_REFERENCED})


def allowed_targets(status: KnowledgeStatus, source_type: SourceType) -> frozenset[KnowledgeStatus]:
    """Forward edges out of ``status`` for an item of ``source_type``."""
    targets = set(_FORWARD[status])
    if status == KnowledgeStatus.DRAFT:
        # Notion items must pass through notion_referenced; other sources have no such stage.
        if source_type == SourceType.NOTION:
            targets.discard(KnowledgeStatus.CONTENT_ANALYZED)
        else:
            targets.discard(KnowledgeStatus.NOTION_REFERENCED)
    return frozenset(targets)


def can_transition(knowledge: KnowledgeRow, target: KnowledgeStatus) -> bool:
    if target == KnowledgeStatus.ERROR:
        return True
    return target in allowed_targets(knowledge.status, knowledge.source_type)


def _check_requirements(
    knowledge: KnowledgeRow, target: KnowledgeStatus, article: ArticleRow | None
) -> str | None:
    """Return why ``target`` cannot be entered yet, or None if it can."""
    if target == KnowledgeStatus.CONTENT_ANALYZED and knowledge.content_analysis is None:
        return "content_analysis is not set"
    if target == KnowledgeStatus.ARTICLE_GENERATED:
        if knowledge.generated_article is None:
            return "generated_article is not set"
        if article is None or article.knowledge_id != knowledge.id:
            return "no persisted article for this knowledge item"
    if target == KnowledgeStatus.ARTICLE_PUBLISHED:
        if article is None or article.knowledge_id != knowledge.id:
            return "no persisted article for this knowledge item"
        if not article.github_sha:
            return "article has no github_sha"
    return None


def transition(
    knowledge: KnowledgeRow,
    target: KnowledgeStatus,
    *,
    article: ArticleRow | None = None,
) -> None:
    """Move ``knowledge`` forward to ``target``, enforcing edges and stage requirements.

    Raises:
        InvalidTransition: If the edge does not exist or the stage's data is missing.
    """
    if target == KnowledgeStatus.ERROR:
        raise InvalidTransition(
            knowledge.id, knowledge.status.value, target.value, "use mark_error"
        )
    if not can_transition(knowledge, target):
        raise InvalidTransition(knowledge.id, knowledge.status.value, target.value)
    reason = _check_requirements(knowledge, target, article)
    if reason:
        raise InvalidTransition(knowledge.id, knowledge.status.value, target.value, reason)

    logger.info(
        "Knowledge %s: %s -> %s", knowledge.id, knowledge.status.value, target.value
    )
    knowledge.status = target
    knowledge.last_error = None


def mark_error(knowledge: KnowledgeRow, message: str) -> None:
    """Put ``knowledge`` into ``error``, remembering where it was and why."""
    if knowledge.status != KnowledgeStatus.ERROR:
        knowledge.status_before_error = knowledge.status
    knowledge.status = KnowledgeStatus.ERROR
    knowledge.last_error = message
    logger.warning("Knowledge %s marked error: %s", knowledge.id, message)


def reset(knowledge: KnowledgeRow) -> KnowledgeStatus:
    """Manual reset out of ``error``. Returns the restored status."""
    if knowledge.status != KnowledgeStatus.ERROR:
        raise InvalidTransition(
            knowledge.id, knowledge.status.value, "reset", "item is not in error"
        )
    restored = knowledge.status_before_error or KnowledgeStatus.DRAFT
    knowledge.status = restored
    knowledge.status_before_error = None
    knowledge.last_error = None
    logger.info("Knowledge %s reset from error to %s", knowledge.id, restored.value)
    return restored


def restart_cycle(knowledge: KnowledgeRow) -> None:
    """Begin a new analysis cycle after upstream content changed.

    Clears the previous analysis and article payloads and returns the item to
    its entry stage. Items in ``error`` stay there until reset.
    """
    knowledge.content_analysis = None
    knowledge.generated_article = None
    if knowledge.source_type == SourceType.NOTION:
        entry = KnowledgeStatus.NOTION_REFERENCED
    else:
        entry = KnowledgeStatus.DRAFT
    if knowledge.status == KnowledgeStatus.ERROR:
        knowledge.status_before_error = entry
        return
    knowledge.status = entry
