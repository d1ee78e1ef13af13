"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from knowledge_pipeline.db.base import create_engine, create_session_factory, init_models, utcnow
from knowledge_pipeline.db.tables import KnowledgeRow, NotionReferenceRow
from knowledge_pipeline.github.publisher import PublishResult
from knowledge_pipeline.models.knowledge import (
    ArticleStats,
    ArticleType,
    ContentAnalysis,
    GeneratedArticle,
    KnowledgeStatus,
    SourceType,
)
from knowledge_pipeline.models.sync import NotionPageContent
from knowledge_pipeline.pipeline.duplicates import DuplicateDetector
from knowledge_pipeline.pipeline.queue import GenerationQueue
from knowledge_pipeline.pipeline.stages import KnowledgePipeline


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_analysis(**overrides) -> ContentAnalysis:
    defaults = {
        "summary": "How widgets are assembled and tested.",
        "key_topics": ["widgets", "testing"],
        "suggested_title": "Intro to Widgets",
        "estimated_article_length": 3000,
        "target_audience": "backend engineers",
        "recommended_structure": ["Overview", "Assembly", "Testing"],
    }
    defaults.update(overrides)
    return ContentAnalysis(**defaults)


def make_generated(**overrides) -> GeneratedArticle:
    defaults = {
        "title": "Intro to Widgets",
        "emoji": "🔧",
        "type": ArticleType.TECH,
        "topics": ["widgets", "python"],
        "content": "## Overview\n\nWidgets are small.",
        "metadata": ArticleStats(estimated_reading_time=5, word_count=900, difficulty="beginner"),
    }
    defaults.update(overrides)
    return GeneratedArticle(**defaults)


def make_page(**overrides) -> NotionPageContent:
    defaults = {
        "id": "0123456789abcdef0123456789abcdef",
        "title": "Intro to Widgets",
        "content": "Widgets are small composable units.",
        "url": "https://www.notion.so/Intro-to-Widgets-0123456789abcdef0123456789abcdef",
        "created_time": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "last_edited_time": datetime(2026, 1, 2, 9, 30, tzinfo=timezone.utc),
    }
    defaults.update(overrides)
    return NotionPageContent(**defaults)


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utcnow())


@pytest.fixture
def add_knowledge(sessions):
    """Insert a knowledge row; keyword overrides set any column."""

    async def _add(**overrides) -> KnowledgeRow:
        defaults = {
            "title": "Intro to Widgets",
            "content": "Widgets are small composable units.",
            "source_type": SourceType.TEXT,
            "status": KnowledgeStatus.DRAFT,
            "tags": [],
        }
        defaults.update(overrides)
        async with sessions() as session:
            knowledge = KnowledgeRow(**defaults)
            session.add(knowledge)
            await session.commit()
        return knowledge

    return _add


@pytest.fixture
def add_reference(sessions, add_knowledge):
    """Insert a Notion-sourced knowledge row plus its reference."""

    async def _add(knowledge_overrides: dict | None = None, **overrides) -> NotionReferenceRow:
        knowledge = await add_knowledge(
            **{
                "source_type": SourceType.NOTION,
                "status": KnowledgeStatus.NOTION_REFERENCED,
                **(knowledge_overrides or {}),
            }
        )
        defaults = {
            "knowledge_id": knowledge.id,
            "page_id": "0123456789abcdef0123456789abcdef",
            "page_url": "https://www.notion.so/0123456789abcdef0123456789abcdef",
            "page_title": knowledge.title,
            "auto_sync_enabled": True,
        }
        defaults.update(overrides)
        async with sessions() as session:
            reference = NotionReferenceRow(**defaults)
            session.add(reference)
            await session.commit()
        return reference

    return _add


@pytest.fixture
def writer() -> AsyncMock:
    writer = AsyncMock()
    writer.analyze.return_value = make_analysis()
    writer.generate.return_value = make_generated()
    return writer


@pytest.fixture
def publisher() -> AsyncMock:
    publisher = AsyncMock()
    publisher.publish.return_value = PublishResult(
        success=True,
        url="https://github.com/acme/articles/blob/main/articles/intro-to-widgets.md",
        sha="3f2a9c",
        path="articles/intro-to-widgets.md",
    )
    return publisher


@pytest.fixture
def pipeline(sessions, writer, publisher) -> KnowledgePipeline:
    return KnowledgePipeline(sessions, writer, publisher, call_timeout=5.0)


@pytest.fixture
def queue(sessions, pipeline, clock) -> GenerationQueue:
    return GenerationQueue(sessions, pipeline, DuplicateDetector(), clock=clock)
