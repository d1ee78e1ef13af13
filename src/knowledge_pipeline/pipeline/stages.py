"""Pipeline stages: analyze, generate, publish.

Each stage reads what it needs in a short session, makes its external call
outside any transaction under a per-call timeout, then re-reads the item and
applies its writes plus the status transition in a single commit. A stage that
fails leaves nothing half-applied.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import async_sessionmaker

from knowledge_pipeline.db import repository
from knowledge_pipeline.db.base import new_id, utcnow
from knowledge_pipeline.db.tables import ArticleRow
from knowledge_pipeline.errors import (
    CycleRestarted,
    InvalidTransition,
    KnowledgeNotFound,
    PublishNetworkError,
    PublishPermissionError,
    PublishRejectedError,
    StageError,
)
from knowledge_pipeline.github.publisher import PublishFailure, Publisher, make_slug
from knowledge_pipeline.llm.processor import GeminiWriter
from knowledge_pipeline.models.knowledge import (
    ArticleMetadata,
    ContentAnalysis,
    GenerationOptions,
    KnowledgeStatus,
)
from knowledge_pipeline.pipeline import state

logger = logging.getLogger(__name__)

STAGE_ANALYZE = "analyze"
STAGE_GENERATE = "generate"
STAGE_PUBLISH = "publish"

# Upstream changes absorbed by one run before it gives up to the queue's retry
MAX_CYCLE_RESTARTS = 3

_PUBLISH_ERRORS = {
    PublishFailure.NETWORK: PublishNetworkError,
    PublishFailure.PERMISSION: PublishPermissionError,
    PublishFailure.CONFLICT: PublishRejectedError,
}


def _require_edge(knowledge, target: KnowledgeStatus) -> None:
    if not state.can_transition(knowledge, target):
        raise InvalidTransition(knowledge.id, knowledge.status.value, target.value)


def _require_same_cycle(knowledge, title: str, content: str, target: KnowledgeStatus) -> None:
    """Like ``_require_edge``, but a sync that restarted the cycle since the read is
    reported as ``CycleRestarted`` rather than an invalid transition.
    """
    restarted = (
        knowledge.status in state.ANALYZABLE and target != KnowledgeStatus.CONTENT_ANALYZED
    )
    if restarted or knowledge.title != title or knowledge.content != content:
        raise CycleRestarted(knowledge.id, target.value)
    _require_edge(knowledge, target)


class KnowledgePipeline:
    """Runs the analysis, generation and publish stages for one knowledge item."""

    def __init__(
        self,
        sessions: async_sessionmaker,
        writer: GeminiWriter,
        publisher: Publisher,
        *,
        call_timeout: float = 120.0,
        publish_live: bool = False,
    ):
        self._sessions = sessions
        self._writer = writer
        self._publisher = publisher
        self._timeout = call_timeout
        self._publish_live = publish_live

    async def analyze(self, knowledge_id: str) -> ContentAnalysis:
        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            _require_edge(knowledge, KnowledgeStatus.CONTENT_ANALYZED)
            title, content = knowledge.title, knowledge.content

        async with asyncio.timeout(self._timeout):
            analysis = await self._writer.analyze(content, title)

        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            _require_same_cycle(knowledge, title, content, KnowledgeStatus.CONTENT_ANALYZED)
            knowledge.content_analysis = analysis.model_dump(mode="json")
            state.transition(knowledge, KnowledgeStatus.CONTENT_ANALYZED)
            await session.commit()
        return analysis

    async def generate(
        self, knowledge_id: str, options: GenerationOptions | None = None
    ) -> ArticleRow:
        """Generate the article and persist it as a new Article row."""
        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            _require_edge(knowledge, KnowledgeStatus.ARTICLE_GENERATED)
            analysis = repository.load_analysis(knowledge)
            title, content = knowledge.title, knowledge.content

        async with asyncio.timeout(self._timeout):
            generated = await self._writer.generate(content, analysis, options)

        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            _require_same_cycle(knowledge, title, content, KnowledgeStatus.ARTICLE_GENERATED)

            article_id = new_id()
            article = ArticleRow(
                id=article_id,
                knowledge_id=knowledge.id,
                title=generated.title,
                content=generated.content,
                slug=make_slug(generated.title, article_id[:8]),
                emoji=generated.emoji,
                type=generated.type,
                topics=generated.topics,
                stats=generated.metadata.model_dump(mode="json") if generated.metadata else None,
                published=False,
            )
            session.add(article)
            knowledge.generated_article = generated.model_dump(mode="json")
            state.transition(knowledge, KnowledgeStatus.ARTICLE_GENERATED, article=article)
            await session.commit()

        logger.info("Generated article %s for knowledge %s", article.id, knowledge_id)
        return article

    async def publish(self, knowledge_id: str) -> ArticleRow:
        """Push the latest article to GitHub and record its sha."""
        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            _require_edge(knowledge, KnowledgeStatus.ARTICLE_PUBLISHED)
            article = await repository.latest_article(session, knowledge_id)
            if article is None:
                raise InvalidTransition(
                    knowledge_id,
                    knowledge.status.value,
                    KnowledgeStatus.ARTICLE_PUBLISHED.value,
                    "no persisted article for this knowledge item",
                )
            metadata = ArticleMetadata(
                title=article.title,
                emoji=article.emoji,
                type=article.type,
                topics=article.topics,
                published=self._publish_live,
            )
            body, slug, article_id = article.content, article.slug, article.id
            title, content = knowledge.title, knowledge.content

        async with asyncio.timeout(self._timeout):
            result = await self._publisher.publish(metadata, body, slug)
        if not result.success:
            raise _PUBLISH_ERRORS[result.reason](result.error or "publish failed")

        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            _require_same_cycle(knowledge, title, content, KnowledgeStatus.ARTICLE_PUBLISHED)
            article = await session.get(ArticleRow, article_id)
            article.github_path = result.path
            article.github_url = result.url
            article.github_sha = result.sha
            article.published = metadata.published
            article.published_at = utcnow()
            state.transition(knowledge, KnowledgeStatus.ARTICLE_PUBLISHED, article=article)
            repository.add_article_log(
                session,
                knowledge_id=knowledge_id,
                article_id=article_id,
                action="published",
                status="success",
                message=f"Published to {result.url}",
                details={"github_path": result.path, "github_sha": result.sha},
            )
            await session.commit()
        return article

    async def _stage(self, name: str, knowledge_id: str, call: Callable[[], Awaitable]):
        try:
            return await call()
        except CycleRestarted as exc:
            logger.info(
                "Stage %s result for knowledge %s dropped: %s",
                name,
                knowledge_id,
                exc,
                extra={"knowledge_id": knowledge_id, "stage": name},
            )
            raise StageError(name, knowledge_id, exc) from exc
        except Exception as exc:
            logger.error(
                "Stage %s failed for knowledge %s: %s",
                name,
                knowledge_id,
                exc,
                extra={"knowledge_id": knowledge_id, "stage": name},
            )
            raise StageError(name, knowledge_id, exc) from exc

    async def _current_status(self, knowledge_id: str) -> KnowledgeStatus:
        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            return knowledge.status

    async def run(self, knowledge_id: str, options: GenerationOptions | None = None) -> str:
        """Drive the item from its current stage to published. Returns the article id.

        Stages already completed are skipped, so a retried run resumes where
        the previous attempt stopped. When a sync restarts the cycle mid-stage the
        run starts over from analysis with the new content, up to
        ``MAX_CYCLE_RESTARTS`` times.

        Raises:
            StageError: Wrapping the first stage failure.
        """
        restarts = 0
        while True:
            status = await self._current_status(knowledge_id)
            try:
                if status in state.ANALYZABLE:
                    await self._stage(
                        STAGE_ANALYZE, knowledge_id, lambda: self.analyze(knowledge_id)
                    )
                elif status == KnowledgeStatus.CONTENT_ANALYZED:
                    await self._stage(
                        STAGE_GENERATE, knowledge_id, lambda: self.generate(knowledge_id, options)
                    )
                elif status == KnowledgeStatus.ARTICLE_GENERATED:
                    await self._stage(
                        STAGE_PUBLISH, knowledge_id, lambda: self.publish(knowledge_id)
                    )
                elif status == KnowledgeStatus.ARTICLE_PUBLISHED:
                    async with self._sessions() as session:
                        article = await repository.latest_article(session, knowledge_id)
                    return article.id
                else:
                    raise StageError(
                        "run",
                        knowledge_id,
                        InvalidTransition(
                            knowledge_id, status.value, "run", "reset the item first"
                        ),
                    )
            except StageError as exc:
                if not isinstance(exc.cause, CycleRestarted) or restarts >= MAX_CYCLE_RESTARTS:
                    raise
                restarts += 1
                logger.info(
                    "Knowledge %s changed upstream during %s, starting over (%d/%d)",
                    knowledge_id,
                    exc.stage,
                    restarts,
                    MAX_CYCLE_RESTARTS,
                )

    async def run_stage_manually(
        self, stage: str, knowledge_id: str, options: GenerationOptions | None = None
    ):
        """Run one stage outside the queue.

        A failed stage puts the item in ``error``. Out-of-order calls and stages
        overtaken by a sync leave it where it is.
        """
        calls = {
            STAGE_ANALYZE: lambda: self.analyze(knowledge_id),
            STAGE_GENERATE: lambda: self.generate(knowledge_id, options),
            STAGE_PUBLISH: lambda: self.publish(knowledge_id),
        }
        if stage not in calls:
            raise ValueError(f"Unknown stage: {stage}")
        try:
            return await self._stage(stage, knowledge_id, calls[stage])
        except StageError as exc:
            if isinstance(exc.cause, (CycleRestarted, InvalidTransition, KnowledgeNotFound)):
                raise
            await self.mark_failed(knowledge_id, str(exc))
            raise

    async def mark_failed(self, knowledge_id: str, message: str) -> None:
        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            state.mark_error(knowledge, message)
            await session.commit()

    async def reset(self, knowledge_id: str) -> KnowledgeStatus:
        """Manual reset out of ``error``. Returns the restored status."""
        async with self._sessions() as session:
            knowledge = await repository.get_knowledge(session, knowledge_id)
            restored = state.reset(knowledge)
            await session.commit()
        return restored
