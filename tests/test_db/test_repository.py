"""Tests for repository helpers."""

import pytest
from sqlalchemy import func, select

from knowledge_pipeline.db import repository
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
from knowledge_pipeline.models.sync import SyncStatus, SyncType


async def _count(sessions, model) -> int:
    async with sessions() as session:
        return await session.scalar(select(func.count()).select_from(model))


async def test_get_missing_rows_raise(sessions):
    async with sessions() as session:
        with pytest.raises(KnowledgeNotFound):
            await repository.get_knowledge(session, "missing")
        with pytest.raises(ReferenceNotFound):
            await repository.get_reference(session, "missing")


async def test_delete_knowledge_removes_dependents(sessions, add_reference, add_knowledge):
    """Deleting an item removes its reference, sync logs, articles, logs and queue entries."""
    reference = await add_reference()
    other = await add_knowledge(title="Unrelated")
    knowledge_id = reference.knowledge_id

    async with sessions() as session:
        session.add_all(
            [
                SyncLogRow(
                    notion_reference_id=reference.id,
                    sync_type=SyncType.SCHEDULED,
                    status=SyncStatus.SUCCESS,
                ),
                ArticleRow(knowledge_id=knowledge_id, title="t", content="c", slug="t-1"),
                GenerationQueueRow(knowledge_id=knowledge_id),
                GenerationQueueRow(knowledge_id=other.id),
            ]
        )
        repository.add_article_log(
            session, knowledge_id=knowledge_id, action="created", status="success"
        )
        repository.add_duplication(
            session,
            content_hash="h",
            similarity_score=1.0,
            detection_method="content_hash",
            duplicate_knowledge_id=knowledge_id,
        )
        await session.commit()

    async with sessions() as session:
        await repository.delete_knowledge(session, knowledge_id)
        await session.commit()

    assert await _count(sessions, KnowledgeRow) == 1
    assert await _count(sessions, NotionReferenceRow) == 0
    assert await _count(sessions, SyncLogRow) == 0
    assert await _count(sessions, ArticleRow) == 0
    assert await _count(sessions, ArticleLogRow) == 0
    assert await _count(sessions, GenerationQueueRow) == 1
    # The duplication audit outlives the items it mentions
    assert await _count(sessions, ArticleDuplicationRow) == 1


async def test_latest_article_is_newest(sessions, add_knowledge):
    knowledge = await add_knowledge()
    async with sessions() as session:
        session.add(ArticleRow(knowledge_id=knowledge.id, title="v1", content="c", slug="v1"))
        await session.commit()
    async with sessions() as session:
        session.add(ArticleRow(knowledge_id=knowledge.id, title="v2", content="c", slug="v2"))
        await session.commit()

    async with sessions() as session:
        assert (await repository.latest_article(session, knowledge.id)).title == "v2"
