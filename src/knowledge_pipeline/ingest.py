"""Creating knowledge items: direct input and Notion page references."""

import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from knowledge_pipeline.db.base import to_naive_utc, utcnow
from knowledge_pipeline.db.tables import KnowledgeRow, NotionReferenceRow
from knowledge_pipeline.models.knowledge import KnowledgeStatus, SourceType, SyncFrequency
from knowledge_pipeline.models.sync import NotionPageContent
from knowledge_pipeline.notion.client import NotionSource, extract_page_id
from knowledge_pipeline.pipeline import state
from knowledge_pipeline.pipeline.queue import GenerationQueue
from knowledge_pipeline.pipeline.sync import compute_content_hash

logger = logging.getLogger(__name__)


async def create_knowledge(
    sessions: async_sessionmaker,
    *,
    title: str,
    content: str,
    source_type: SourceType = SourceType.TEXT,
    source_url: str | None = None,
    category: str = "uncategorized",
    tags: list[str] | None = None,
    queue: GenerationQueue | None = None,
    priority: int | None = None,
) -> KnowledgeRow:
    """Store a non-Notion knowledge item as ``draft`` and optionally enqueue it."""
    if source_type == SourceType.NOTION:
        raise ValueError("Notion items must be created with reference_notion_page")

    async with sessions() as session:
        knowledge = KnowledgeRow(
            title=title,
            content=content,
            source_type=source_type,
            source_url=source_url,
            category=category,
            tags=list(tags or []),
            status=KnowledgeStatus.DRAFT,
        )
        session.add(knowledge)
        await session.commit()

    logger.info("Created knowledge %s from %s", knowledge.id, source_type.value)
    if queue is not None:
        await queue.enqueue(knowledge.id, priority=priority)
    return knowledge


async def reference_notion_page(
    sessions: async_sessionmaker,
    page: NotionPageContent,
    *,
    category: str = "uncategorized",
    tags: list[str] | None = None,
    auto_sync_enabled: bool = True,
    sync_frequency: SyncFrequency = SyncFrequency.DAILY,
    queue: GenerationQueue | None = None,
    priority: int | None = None,
) -> tuple[KnowledgeRow, NotionReferenceRow]:
    """Create a Notion-sourced item and its reference in one transaction.

    The import counts as the first sync: the reference starts with the page's
    fingerprint, so the next sweep only reacts to real upstream edits.
    """
    now = utcnow()
    async with sessions() as session:
        knowledge = KnowledgeRow(
            title=page.title,
            content=page.content,
            source_type=SourceType.NOTION,
            source_url=page.url,
            category=category,
            tags=list(tags or []),
            status=KnowledgeStatus.DRAFT,
        )
        session.add(knowledge)
        await session.flush()
        state.transition(knowledge, KnowledgeStatus.NOTION_REFERENCED)

        reference = NotionReferenceRow(
            knowledge_id=knowledge.id,
            page_id=page.id.replace("-", ""),
            page_url=page.url,
            page_title=page.title,
            auto_sync_enabled=auto_sync_enabled,
            sync_frequency=sync_frequency,
            content_hash=compute_content_hash(page),
            last_synced_at=now,
            notion_updated_at=to_naive_utc(page.last_edited_time),
        )
        session.add(reference)
        await session.commit()

    logger.info(
        "Referenced Notion page %s as knowledge %s (auto sync %s, %s)",
        reference.page_id,
        knowledge.id,
        "on" if auto_sync_enabled else "off",
        sync_frequency.value,
    )
    if queue is not None:
        await queue.enqueue(knowledge.id, priority=priority)
    return knowledge, reference


async def import_notion_page(
    sessions: async_sessionmaker,
    source: NotionSource,
    url_or_id: str,
    **options,
) -> tuple[KnowledgeRow, NotionReferenceRow]:
    """Fetch a page by URL or id and reference it. ``options`` go to reference_notion_page."""
    page_id = extract_page_id(url_or_id)
    if page_id is None:
        raise ValueError(f"Not a Notion page URL or id: {url_or_id}")
    page = await source.fetch_page(page_id)
    return await reference_notion_page(sessions, page, **options)
