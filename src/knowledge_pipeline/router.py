"""HTTP routes for knowledge items, Notion references and the generation queue."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from knowledge_pipeline import ingest
from knowledge_pipeline.db import repository
from knowledge_pipeline.errors import (
    AlreadyQueued,
    CycleRestarted,
    InvalidTransition,
    KnowledgeNotFound,
    PipelineError,
    ReferenceNotFound,
    StageError,
)
from knowledge_pipeline.models.knowledge import GenerationOptions, SourceType, SyncFrequency
from knowledge_pipeline.models.sync import SyncType
from knowledge_pipeline.pipeline.stages import STAGE_ANALYZE, STAGE_GENERATE, STAGE_PUBLISH
from knowledge_pipeline.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["pipeline"])


def get_services(request: Request) -> Services:
    return request.app.state.services


class KnowledgeCreate(BaseModel):
    title: str
    content: str
    source_type: SourceType = SourceType.TEXT
    source_url: str | None = None
    category: str = "uncategorized"
    tags: list[str] = []
    enqueue: bool = False
    priority: int | None = None


class NotionReferenceCreate(BaseModel):
    url: str
    category: str = "uncategorized"
    tags: list[str] = []
    auto_sync_enabled: bool = True
    sync_frequency: SyncFrequency = SyncFrequency.DAILY
    enqueue: bool = False


class EnqueueRequest(BaseModel):
    priority: int | None = None


class SyncRequest(BaseModel):
    reference_id: str
    force_sync: bool = False


class SyncLogOut(BaseModel):
    id: str
    sync_type: str
    status: str
    changes_detected: bool
    content_changes: list | None = None
    error_message: str | None = None
    sync_duration_ms: int
    created_at: datetime


def _knowledge_out(knowledge) -> dict:
    return {
        "id": knowledge.id,
        "title": knowledge.title,
        "source_type": knowledge.source_type.value,
        "status": knowledge.status.value,
        "last_error": knowledge.last_error,
    }


@router.post("/knowledge", status_code=201)
async def create_knowledge(body: KnowledgeCreate, services: Services = Depends(get_services)):
    try:
        knowledge = await ingest.create_knowledge(
            services.sessions,
            title=body.title,
            content=body.content,
            source_type=body.source_type,
            source_url=body.source_url,
            category=body.category,
            tags=body.tags,
            queue=services.queue if body.enqueue else None,
            priority=body.priority,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _knowledge_out(knowledge)


@router.delete("/knowledge/{knowledge_id}", status_code=204)
async def delete_knowledge(knowledge_id: str, services: Services = Depends(get_services)):
    async with services.sessions() as session:
        try:
            await repository.delete_knowledge(session, knowledge_id)
        except KnowledgeNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        await session.commit()
    return Response(status_code=204)


@router.post("/knowledge/{knowledge_id}/reset")
async def reset_knowledge(knowledge_id: str, services: Services = Depends(get_services)):
    """Move an item out of ``error`` back to where it failed."""
    try:
        restored = await services.pipeline.reset(knowledge_id)
    except KnowledgeNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"id": knowledge_id, "status": restored.value}


@router.post("/knowledge/{knowledge_id}/enqueue", status_code=201)
async def enqueue_knowledge(
    knowledge_id: str,
    body: EnqueueRequest | None = None,
    services: Services = Depends(get_services),
):
    try:
        entry = await services.queue.enqueue(
            knowledge_id, priority=body.priority if body else None
        )
    except KnowledgeNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AlreadyQueued as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"entry_id": entry.id, "scheduled_at": entry.scheduled_at.isoformat()}


async def _run_stage(
    services: Services, stage: str, knowledge_id: str, options: GenerationOptions | None = None
) -> None:
    try:
        await services.pipeline.run_stage_manually(stage, knowledge_id, options)
    except StageError as exc:
        if isinstance(exc.cause, KnowledgeNotFound):
            raise HTTPException(status_code=404, detail=str(exc.cause)) from exc
        if isinstance(exc.cause, (CycleRestarted, InvalidTransition)):
            raise HTTPException(status_code=409, detail=str(exc.cause)) from exc
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("/knowledge/{knowledge_id}/analyze")
async def analyze_knowledge(knowledge_id: str, services: Services = Depends(get_services)):
    await _run_stage(services, STAGE_ANALYZE, knowledge_id)
    async with services.sessions() as session:
        knowledge = await repository.get_knowledge(session, knowledge_id)
        return {**_knowledge_out(knowledge), "analysis": knowledge.content_analysis}


@router.post("/knowledge/{knowledge_id}/generate")
async def generate_article(
    knowledge_id: str,
    options: GenerationOptions | None = None,
    services: Services = Depends(get_services),
):
    await _run_stage(services, STAGE_GENERATE, knowledge_id, options)
    async with services.sessions() as session:
        knowledge = await repository.get_knowledge(session, knowledge_id)
        article = await repository.latest_article(session, knowledge_id)
        return {**_knowledge_out(knowledge), "article_id": article.id, "slug": article.slug}


@router.post("/knowledge/{knowledge_id}/publish")
async def publish_article(knowledge_id: str, services: Services = Depends(get_services)):
    await _run_stage(services, STAGE_PUBLISH, knowledge_id)
    async with services.sessions() as session:
        knowledge = await repository.get_knowledge(session, knowledge_id)
        article = await repository.latest_article(session, knowledge_id)
        return {
            **_knowledge_out(knowledge),
            "article_id": article.id,
            "github_url": article.github_url,
            "github_sha": article.github_sha,
        }


@router.post("/notion/references", status_code=201)
async def reference_notion_page(
    body: NotionReferenceCreate, services: Services = Depends(get_services)
):
    try:
        knowledge, reference = await ingest.import_notion_page(
            services.sessions,
            services.source,
            body.url,
            category=body.category,
            tags=body.tags,
            auto_sync_enabled=body.auto_sync_enabled,
            sync_frequency=body.sync_frequency,
            queue=services.queue if body.enqueue else None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PipelineError as exc:
        logger.error("Notion import failed for %s: %s", body.url, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {**_knowledge_out(knowledge), "reference_id": reference.id}


@router.post("/notion/sync")
async def sync_reference(body: SyncRequest, services: Services = Depends(get_services)):
    """Manually sync one Notion reference."""
    try:
        result = await services.sync.sync_single_reference(
            body.reference_id, force_sync=body.force_sync, sync_type=SyncType.MANUAL
        )
    except ReferenceNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PipelineError as exc:
        logger.error("Manual sync failed for reference %s: %s", body.reference_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return result.model_dump(mode="json")


@router.get("/notion/sync/{reference_id}/logs")
async def sync_logs(reference_id: str, services: Services = Depends(get_services)):
    try:
        logs = await services.sync.list_sync_logs(reference_id)
    except ReferenceNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [
        SyncLogOut(
            id=log.id,
            sync_type=log.sync_type.value,
            status=log.status.value,
            changes_detected=log.changes_detected,
            content_changes=log.content_changes,
            error_message=log.error_message,
            sync_duration_ms=log.sync_duration_ms,
            created_at=log.created_at,
        ).model_dump(mode="json")
        for log in logs
    ]
