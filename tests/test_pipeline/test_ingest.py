"""Tests for creating knowledge items."""

from unittest.mock import AsyncMock

import pytest

from conftest import make_page
from knowledge_pipeline.db.base import to_naive_utc
from knowledge_pipeline.errors import AlreadyQueued
from knowledge_pipeline.ingest import create_knowledge, import_notion_page, reference_notion_page
from knowledge_pipeline.models.knowledge import KnowledgeStatus, SourceType, SyncFrequency
from knowledge_pipeline.pipeline.sync import NotionSyncEngine, compute_content_hash


async def test_create_knowledge_starts_as_draft(sessions):
    knowledge = await create_knowledge(
        sessions,
        title="Retry budgets",
        content="Notes on retry budgets.",
        source_type=SourceType.URL,
        source_url="https://example.com/retry-budgets",
        tags=["reliability"],
    )

    assert knowledge.status == KnowledgeStatus.DRAFT
    assert knowledge.source_type == SourceType.URL
    assert knowledge.tags == ["reliability"]


async def test_create_knowledge_can_enqueue(sessions, queue):
    knowledge = await create_knowledge(
        sessions, title="Retry budgets", content="Notes.", queue=queue, priority=2
    )

    with pytest.raises(AlreadyQueued):
        await queue.enqueue(knowledge.id)


async def test_notion_items_need_a_reference(sessions):
    with pytest.raises(ValueError, match="reference_notion_page"):
        await create_knowledge(
            sessions, title="Page", content="Body", source_type=SourceType.NOTION
        )


async def test_reference_notion_page_records_first_sync(sessions):
    page = make_page(id="01234567-89ab-cdef-0123-456789abcdef")

    knowledge, reference = await reference_notion_page(
        sessions, page, sync_frequency=SyncFrequency.HOURLY, tags=["widgets"]
    )

    assert knowledge.status == KnowledgeStatus.NOTION_REFERENCED
    assert knowledge.source_type == SourceType.NOTION
    assert knowledge.source_url == page.url
    assert reference.knowledge_id == knowledge.id
    assert reference.page_id == "0123456789abcdef0123456789abcdef"
    assert reference.content_hash == compute_content_hash(page)
    assert reference.notion_updated_at == to_naive_utc(page.last_edited_time)
    assert reference.last_synced_at is not None
    assert reference.sync_frequency == SyncFrequency.HOURLY


async def test_first_sweep_after_import_is_a_no_op(sessions, queue, clock):
    page = make_page()
    _, reference = await reference_notion_page(sessions, page)
    source = AsyncMock()
    source.fetch_page.return_value = page

    result = await NotionSyncEngine(sessions, source, queue, clock=clock).sync_single_reference(
        reference.id
    )

    assert not result.changes_detected


async def test_import_notion_page_fetches_by_url(sessions):
    source = AsyncMock()
    source.fetch_page.return_value = make_page()

    knowledge, _ = await import_notion_page(
        sessions,
        source,
        "https://www.notion.so/acme/Intro-to-Widgets-0123456789abcdef0123456789abcdef",
        category="engineering",
    )

    source.fetch_page.assert_awaited_once_with("0123456789abcdef0123456789abcdef")
    assert knowledge.category == "engineering"


async def test_import_notion_page_rejects_bad_url(sessions):
    source = AsyncMock()
    with pytest.raises(ValueError, match="Not a Notion page"):
        await import_notion_page(sessions, source, "https://example.com/nope")
    source.fetch_page.assert_not_awaited()
