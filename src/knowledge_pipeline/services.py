"""Process-wide collaborators, built once at startup and passed around explicitly."""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from knowledge_pipeline.config import Settings
from knowledge_pipeline.db.base import create_engine, create_session_factory
from knowledge_pipeline.github.client import GitHubClient, create_github_client
from knowledge_pipeline.github.publisher import Publisher
from knowledge_pipeline.llm.client import create_gemini_client
from knowledge_pipeline.llm.processor import GeminiWriter
from knowledge_pipeline.notion.client import NotionSource, create_notion_client
from knowledge_pipeline.pipeline.duplicates import DuplicateDetector
from knowledge_pipeline.pipeline.queue import GenerationQueue
from knowledge_pipeline.pipeline.stages import KnowledgePipeline
from knowledge_pipeline.pipeline.sync import NotionSyncEngine


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    sessions: async_sessionmaker
    github: GitHubClient
    source: NotionSource
    pipeline: KnowledgePipeline
    queue: GenerationQueue
    sync: NotionSyncEngine

    async def aclose(self) -> None:
        await self.github.aclose()
        await self.engine.dispose()


def build_services(settings: Settings) -> Services:
    """Wire the pipeline from ``settings``. Missing credentials fail on first use, not here."""
    engine = create_engine(settings.database_url)
    sessions = create_session_factory(engine)

    writer = GeminiWriter(create_gemini_client(settings), settings.gemini_model)
    github = create_github_client(settings)
    publisher = Publisher(github, settings.github_articles_dir)
    pipeline = KnowledgePipeline(
        sessions,
        writer,
        publisher,
        call_timeout=settings.external_call_timeout,
        publish_live=settings.publish_live,
    )
    queue = GenerationQueue(
        sessions,
        pipeline,
        DuplicateDetector(),
        default_priority=settings.queue_default_priority,
        default_max_retries=settings.queue_max_retries,
    )
    source = NotionSource(create_notion_client(settings))
    sync = NotionSyncEngine(
        sessions,
        source,
        queue,
        call_timeout=settings.external_call_timeout,
        enqueue_delay=timedelta(seconds=settings.queue_enqueue_delay_seconds),
        enqueue_priority=settings.queue_default_priority,
        respect_frequency=settings.sync_respect_frequency,
    )
    return Services(
        settings=settings,
        engine=engine,
        sessions=sessions,
        github=github,
        source=source,
        pipeline=pipeline,
        queue=queue,
        sync=sync,
    )
