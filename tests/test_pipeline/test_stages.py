"""Tests for the analyze / generate / publish stages."""

import asyncio

import pytest
from sqlalchemy import select

from knowledge_pipeline.db import repository
from knowledge_pipeline.db.tables import ArticleRow
from knowledge_pipeline.errors import (
    CycleRestarted,
    InvalidTransition,
    LanguageModelError,
    PublishNetworkError,
    PublishRejectedError,
    StageError,
)
from knowledge_pipeline.github.publisher import PublishFailure, PublishResult
from knowledge_pipeline.models.knowledge import KnowledgeStatus, SourceType
from knowledge_pipeline.pipeline import state
from knowledge_pipeline.pipeline.stages import MAX_CYCLE_RESTARTS, KnowledgePipeline


async def _load(sessions, knowledge_id):
    async with sessions() as session:
        return await repository.get_knowledge(session, knowledge_id)


async def _articles(sessions, knowledge_id) -> list[ArticleRow]:
    async with sessions() as session:
        result = await session.execute(
            select(ArticleRow).where(ArticleRow.knowledge_id == knowledge_id)
        )
        return list(result.scalars())


async def _edit_upstream(sessions, knowledge_id, content):
    """Apply a content change the way a Notion sync does."""
    async with sessions() as session:
        knowledge = await repository.get_knowledge(session, knowledge_id)
        knowledge.content = content
        state.restart_cycle(knowledge)
        await session.commit()


async def test_clean_pipeline_walks_every_stage(sessions, add_knowledge, pipeline, publisher):
    """notion_referenced -> content_analyzed -> article_generated -> article_published."""
    knowledge = await add_knowledge(
        source_type=SourceType.NOTION, status=KnowledgeStatus.NOTION_REFERENCED
    )

    await pipeline.analyze(knowledge.id)
    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.CONTENT_ANALYZED
    assert row.content_analysis["suggested_title"] == "Intro to Widgets"

    article = await pipeline.generate(knowledge.id)
    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.ARTICLE_GENERATED
    assert row.generated_article["title"] == "Intro to Widgets"
    assert article.knowledge_id == knowledge.id
    assert article.slug.startswith("intro-to-widgets-")

    await pipeline.publish(knowledge.id)
    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.ARTICLE_PUBLISHED
    (stored,) = await _articles(sessions, knowledge.id)
    assert stored.github_sha == "3f2a9c"
    assert stored.published_at is not None
    assert stored.published is False

    metadata, body, slug = publisher.publish.await_args.args
    assert metadata.published is False
    assert slug == stored.slug


async def test_run_resumes_from_current_stage(sessions, add_knowledge, pipeline, writer):
    """A run on an already analyzed item does not call analysis again."""
    knowledge = await add_knowledge(
        status=KnowledgeStatus.CONTENT_ANALYZED,
        content_analysis=writer.analyze.return_value.model_dump(mode="json"),
    )

    article_id = await pipeline.run(knowledge.id)

    writer.analyze.assert_not_awaited()
    writer.generate.assert_awaited_once()
    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.ARTICLE_PUBLISHED
    assert (await _articles(sessions, knowledge.id))[0].id == article_id


async def test_generation_failure_creates_no_article(sessions, add_knowledge, pipeline, writer):
    """A failed generation leaves the item analyzed and writes nothing."""
    writer.generate.side_effect = LanguageModelError("503 overloaded")
    knowledge = await add_knowledge()

    with pytest.raises(StageError) as exc_info:
        await pipeline.run(knowledge.id)

    assert exc_info.value.stage == "generate"
    assert isinstance(exc_info.value.cause, LanguageModelError)
    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.CONTENT_ANALYZED
    assert row.generated_article is None
    assert await _articles(sessions, knowledge.id) == []


@pytest.mark.parametrize(
    ("reason", "error"),
    [
        (PublishFailure.NETWORK, PublishNetworkError),
        (PublishFailure.CONFLICT, PublishRejectedError),
    ],
)
async def test_publish_failure_reasons_map_to_errors(
    sessions, add_knowledge, pipeline, publisher, reason, error
):
    publisher.publish.return_value = PublishResult(success=False, error="nope", reason=reason)
    knowledge = await add_knowledge()
    await pipeline.analyze(knowledge.id)
    await pipeline.generate(knowledge.id)

    with pytest.raises(error):
        await pipeline.publish(knowledge.id)

    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.ARTICLE_GENERATED
    assert (await _articles(sessions, knowledge.id))[0].github_sha is None


async def test_notion_draft_cannot_be_analyzed(add_knowledge, pipeline, writer):
    knowledge = await add_knowledge(source_type=SourceType.NOTION, status=KnowledgeStatus.DRAFT)
    with pytest.raises(InvalidTransition):
        await pipeline.analyze(knowledge.id)
    writer.analyze.assert_not_awaited()


async def test_slow_call_times_out(sessions, add_knowledge, writer, publisher):
    async def _hang(*args, **kwargs):
        await asyncio.sleep(10)

    writer.analyze.side_effect = _hang
    pipeline = KnowledgePipeline(sessions, writer, publisher, call_timeout=0.05)
    knowledge = await add_knowledge()

    with pytest.raises(TimeoutError):
        await pipeline.analyze(knowledge.id)


async def test_manual_stage_failure_marks_error(sessions, add_knowledge, pipeline, writer):
    """Outside the queue, any stage failure leaves the item in error with the message."""
    writer.analyze.side_effect = LanguageModelError("quota exhausted")
    knowledge = await add_knowledge()

    with pytest.raises(StageError):
        await pipeline.run_stage_manually("analyze", knowledge.id)

    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.ERROR
    assert "quota exhausted" in row.last_error
    assert row.status_before_error == KnowledgeStatus.DRAFT

    restored = await pipeline.reset(knowledge.id)
    assert restored == KnowledgeStatus.DRAFT


async def test_manual_stage_out_of_order_does_not_mark_error(sessions, add_knowledge, pipeline):
    knowledge = await add_knowledge()

    with pytest.raises(StageError) as exc_info:
        await pipeline.run_stage_manually("publish", knowledge.id)

    assert isinstance(exc_info.value.cause, InvalidTransition)
    assert (await _load(sessions, knowledge.id)).status == KnowledgeStatus.DRAFT


async def test_publish_live_flag_reaches_front_matter_and_row(
    sessions, add_knowledge, writer, publisher
):
    pipeline = KnowledgePipeline(sessions, writer, publisher, call_timeout=5.0, publish_live=True)
    knowledge = await add_knowledge()

    await pipeline.run(knowledge.id)

    metadata = publisher.publish.await_args.args[0]
    (stored,) = await _articles(sessions, knowledge.id)
    assert metadata.published is True
    assert stored.published is True


async def test_generation_overtaken_by_upstream_edit_is_dropped(
    sessions, add_knowledge, pipeline, writer
):
    knowledge = await add_knowledge(
        status=KnowledgeStatus.CONTENT_ANALYZED,
        content_analysis=writer.analyze.return_value.model_dump(mode="json"),
    )
    generated = writer.generate.return_value

    async def _generate(content, analysis, options):
        await _edit_upstream(sessions, knowledge.id, "Rewritten upstream.")
        return generated

    writer.generate.side_effect = _generate

    with pytest.raises(CycleRestarted):
        await pipeline.generate(knowledge.id)

    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.DRAFT
    assert row.generated_article is None
    assert await _articles(sessions, knowledge.id) == []


async def test_stale_analysis_is_not_written_over_new_content(
    sessions, add_knowledge, pipeline, writer
):
    knowledge = await add_knowledge()
    analysis = writer.analyze.return_value

    async def _analyze(content, title):
        await _edit_upstream(sessions, knowledge.id, "Rewritten upstream.")
        return analysis

    writer.analyze.side_effect = _analyze

    with pytest.raises(CycleRestarted):
        await pipeline.analyze(knowledge.id)

    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.DRAFT
    assert row.content_analysis is None


async def test_run_gives_up_after_repeated_upstream_edits(
    sessions, add_knowledge, pipeline, writer
):
    knowledge = await add_knowledge()
    analysis = writer.analyze.return_value
    edits = []

    async def _analyze(content, title):
        edits.append(content)
        await _edit_upstream(sessions, knowledge.id, f"Revision {len(edits)}")
        return analysis

    writer.analyze.side_effect = _analyze

    with pytest.raises(StageError) as exc_info:
        await pipeline.run(knowledge.id)

    assert isinstance(exc_info.value.cause, CycleRestarted)
    assert writer.analyze.await_count == MAX_CYCLE_RESTARTS + 1
    assert (await _load(sessions, knowledge.id)).status == KnowledgeStatus.DRAFT


async def test_manual_stage_overtaken_by_upstream_edit_does_not_mark_error(
    sessions, add_knowledge, pipeline, writer
):
    knowledge = await add_knowledge()
    analysis = writer.analyze.return_value

    async def _analyze(content, title):
        await _edit_upstream(sessions, knowledge.id, "Rewritten upstream.")
        return analysis

    writer.analyze.side_effect = _analyze

    with pytest.raises(StageError) as exc_info:
        await pipeline.run_stage_manually("analyze", knowledge.id)

    assert isinstance(exc_info.value.cause, CycleRestarted)
    row = await _load(sessions, knowledge.id)
    assert row.status == KnowledgeStatus.DRAFT
    assert row.last_error is None
