"""Duplicate detection against knowledge items that already produced articles.

Two checks, in order:

1. Exact fingerprint: sha256 over title + content equals another item's
   fingerprint (score 1.0).
2. Title overlap: |common words| / |all words| of the two titles, lowercased
   and whitespace-split, above ``TITLE_SIMILARITY_THRESHOLD``.

The 0.8 threshold is coarse and can false-positive on short titles built
from common words. It is kept as-is until there is data to tune it.
"""

import hashlib
import logging

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.db import repository
from knowledge_pipeline.db.tables import ArticleRow, KnowledgeRow

logger = logging.getLogger(__name__)

TITLE_SIMILARITY_THRESHOLD = 0.8

METHOD_CONTENT_HASH = "content_hash"
METHOD_TITLE_SIMILARITY = "title_similarity"


class DuplicateCheck(BaseModel):
    is_duplicate: bool
    content_hash: str
    similarity_score: float = 0.0
    detection_method: str | None = None
    original_article_id: str | None = None
    original_knowledge_id: str | None = None


def content_fingerprint(title: str, content: str) -> str:
    return hashlib.sha256((title + content).encode("utf-8")).hexdigest()


def title_similarity(first: str, second: str) -> float:
    """Word-overlap ratio of two titles in [0.0, 1.0]."""
    words_a = set(first.lower().split())
    words_b = set(second.lower().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


class DuplicateDetector:
    """Flags knowledge items whose content was already turned into an article.

    Every hit is written as an ArticleDuplication row in the caller's session;
    the caller commits it together with the queue entry update.
    """

    def __init__(self, threshold: float = TITLE_SIMILARITY_THRESHOLD):
        self.threshold = threshold

    async def _candidates(
        self, session: AsyncSession, knowledge_id: str
    ) -> list[tuple[ArticleRow, KnowledgeRow]]:
        result = await session.execute(
            select(ArticleRow, KnowledgeRow)
            .join(KnowledgeRow, ArticleRow.knowledge_id == KnowledgeRow.id)
            .where(KnowledgeRow.id != knowledge_id)
            .order_by(ArticleRow.created_at.desc())
        )
        # Newest article per source item
        seen: set[str] = set()
        candidates = []
        for article, source in result:
            if source.id in seen:
                continue
            seen.add(source.id)
            candidates.append((article, source))
        return candidates

    async def check(self, session: AsyncSession, knowledge: KnowledgeRow) -> DuplicateCheck:
        fingerprint = content_fingerprint(knowledge.title, knowledge.content)
        candidates = await self._candidates(session, knowledge.id)

        match = None
        for article, source in candidates:
            if content_fingerprint(source.title, source.content) == fingerprint:
                match = (article, source, 1.0, METHOD_CONTENT_HASH)
                break

        if match is None:
            best_score = 0.0
            for article, source in candidates:
                score = title_similarity(knowledge.title, source.title)
                if score > self.threshold and score > best_score:
                    best_score = score
                    match = (article, source, score, METHOD_TITLE_SIMILARITY)

        if match is None:
            return DuplicateCheck(is_duplicate=False, content_hash=fingerprint)

        article, source, score, method = match
        repository.add_duplication(
            session,
            content_hash=fingerprint,
            similarity_score=score,
            detection_method=method,
            original_article_id=article.id,
            original_knowledge_id=source.id,
            duplicate_knowledge_id=knowledge.id,
        )
        logger.info(
            "Knowledge %s duplicates knowledge %s (article %s, %s, score %.2f)",
            knowledge.id,
            source.id,
            article.id,
            method,
            score,
        )
        return DuplicateCheck(
            is_duplicate=True,
            content_hash=fingerprint,
            similarity_score=score,
            detection_method=method,
            original_article_id=article.id,
            original_knowledge_id=source.id,
        )
