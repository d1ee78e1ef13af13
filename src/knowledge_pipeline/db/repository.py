"""Query helpers shared by the pipeline components.

This is the serialization boundary: JSON columns are validated into pydantic
models here, so business logic never handles raw payload dicts.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.db.tables import (
    ArticleDuplicationRow,
    ArticleLogRow,
    ArticleRow,
    GenerationQueueRow,
    KnowledgeRow,
    NotionReferenceRow,
    SyncLogRow,
)
from knowledge_pipeline.errors import KnowledgeNotFound, ReferenceNotFound
from knowledge_pipeline.models.knowledge import ContentAnalysis, GeneratedArticle
from knowledge_pipeline.models.queue import ACTIVE_QUEUE_STATUSES


async def get_knowledge(session: AsyncSession, knowledge_id: str) -> KnowledgeRow:
    knowledge = await session.get(KnowledgeRow, knowledge_id)
    if knowledge is None:
        raise KnowledgeNotFound(f"Knowledge not found: {knowledge_id}")
    return knowledge


async def get_reference(session: AsyncSession, reference_id: str) -> NotionReferenceRow:
    reference = await session.get(NotionReferenceRow, reference_id)
    if reference is None:
        raise ReferenceNotFound(f"Notion reference not found: {reference_id}")
    return reference


async def find_reference_for_knowledge(
    session: AsyncSession, knowledge_id: str
) -> NotionReferenceRow | None:
    result = await session.execute(
        select(NotionReferenceRow).where(NotionReferenceRow.knowledge_id == knowledge_id)
    )
    return result.scalar_one_or_none()


async def latest_article(session: AsyncSession, knowledge_id: str) -> ArticleRow | None:
    result = await session.execute(
        select(ArticleRow)
        .where(ArticleRow.knowledge_id == knowledge_id)
        .order_by(ArticleRow.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_active_entry(
    session: AsyncSession, knowledge_id: str
) -> GenerationQueueRow | None:
    """Return the pending/processing queue entry for a knowledge item, if any."""
    result = await session.execute(
        select(GenerationQueueRow)
        .where(
            GenerationQueueRow.knowledge_id == knowledge_id,
            GenerationQueueRow.status.in_(ACTIVE_QUEUE_STATUSES),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


def load_analysis(knowledge: KnowledgeRow) -> ContentAnalysis | None:
    if knowledge.content_analysis is None:
        return None
    return ContentAnalysis.model_validate(knowledge.content_analysis)


def load_generated_article(knowledge: KnowledgeRow) -> GeneratedArticle | None:
    if knowledge.generated_article is None:
        return None
    return GeneratedArticle.model_validate(knowledge.generated_article)


def add_article_log(
    session: AsyncSession,
    *,
    knowledge_id: str,
    action: str,
    status: str,
    message: str | None = None,
    article_id: str | None = None,
    queue_entry_id: str | None = None,
    details: dict | None = None,
) -> ArticleLogRow:
    log = ArticleLogRow(
        knowledge_id=knowledge_id,
        article_id=article_id,
        queue_entry_id=queue_entry_id,
        action=action,
        status=status,
        message=message,
        details=details,
    )
    session.add(log)
    return log


def add_duplication(
    session: AsyncSession,
    *,
    content_hash: str,
    similarity_score: float,
    detection_method: str,
    original_article_id: str | None = None,
    original_knowledge_id: str | None = None,
    duplicate_knowledge_id: str | None = None,
) -> ArticleDuplicationRow:
    record = ArticleDuplicationRow(
        original_article_id=original_article_id,
        original_knowledge_id=original_knowledge_id,
        duplicate_knowledge_id=duplicate_knowledge_id,
        duplicate_content_hash=content_hash,
        similarity_score=similarity_score,
        detection_method=detection_method,
    )
    session.add(record)
    return record


async def delete_knowledge(session: AsyncSession, knowledge_id: str) -> None:
    """Delete a knowledge item and everything that hangs off it.

    Explicit deletes keep the cascade independent of database-level foreign
    key enforcement (SQLite leaves it off by default). Duplication audit rows
    are kept.
    """
    await get_knowledge(session, knowledge_id)

    reference_ids = select(NotionReferenceRow.id).where(
        NotionReferenceRow.knowledge_id == knowledge_id
    )
    await session.execute(
        delete(SyncLogRow).where(SyncLogRow.notion_reference_id.in_(reference_ids))
    )
    await session.execute(
        delete(NotionReferenceRow).where(NotionReferenceRow.knowledge_id == knowledge_id)
    )
    await session.execute(delete(ArticleLogRow).where(ArticleLogRow.knowledge_id == knowledge_id))
    await session.execute(delete(ArticleRow).where(ArticleRow.knowledge_id == knowledge_id))
    await session.execute(
        delete(GenerationQueueRow).where(GenerationQueueRow.knowledge_id == knowledge_id)
    )
    await session.execute(delete(KnowledgeRow).where(KnowledgeRow.id == knowledge_id))
