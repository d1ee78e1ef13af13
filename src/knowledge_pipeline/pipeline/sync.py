"""Notion change detection and sync.

A sync fetches the page, fingerprints ``{title, content, last_edited_time}``
and compares it to the stored fingerprint. Unchanged pages only get a sync
log row. Changed pages update the knowledge item and reference in one
transaction, start a new pipeline cycle and are enqueued for generation,
unless another reference already holds the same fingerprint, in which case
the duplicate is recorded and nothing else changes.
"""

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from knowledge_pipeline.backoff import SYNC_BACKOFF, BackoffPolicy
from knowledge_pipeline.db import repository
from knowledge_pipeline.db.base import to_naive_utc, utcnow
from knowledge_pipeline.db.tables import KnowledgeRow, NotionReferenceRow, SyncLogRow
from knowledge_pipeline.errors import AlreadyQueued, SourceUnavailableError, is_retryable
from knowledge_pipeline.models.knowledge import SyncFrequency
from knowledge_pipeline.models.sync import (
    ChangeType,
    ContentChange,
    NotionPageContent,
    SyncResult,
    SyncStats,
    SyncStatus,
    SyncType,
)
from knowledge_pipeline.notion.client import NotionSource
from knowledge_pipeline.pipeline import state
from knowledge_pipeline.pipeline.queue import GenerationQueue

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100

SYNC_INTERVALS = {
    SyncFrequency.HOURLY: timedelta(hours=1),
    SyncFrequency.DAILY: timedelta(hours=24),
    SyncFrequency.WEEKLY: timedelta(days=7),
}
DEFAULT_SYNC_INTERVAL = SYNC_INTERVALS[SyncFrequency.DAILY]


def compute_content_hash(page: NotionPageContent) -> str:
    payload = json.dumps(
        {
            "title": page.title,
            "content": page.content,
            "last_edited_time": page.last_edited_time.isoformat(),
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def detect_changes(reference: NotionReferenceRow, page: NotionPageContent, new_hash: str) -> bool:
    """True when the page differs from what the reference last recorded.

    A newer ``last_edited_time`` than ``notion_updated_at`` counts as a change
    even when the fingerprints agree.
    """
    if reference.content_hash != new_hash:
        return True
    if reference.notion_updated_at is not None:
        return to_naive_utc(page.last_edited_time) > reference.notion_updated_at
    return False


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


def analyze_content_changes(
    reference: NotionReferenceRow,
    knowledge: KnowledgeRow,
    page: NotionPageContent,
    timestamp: datetime,
) -> list[ContentChange]:
    changes = []
    if reference.page_title != page.title:
        changes.append(
            ContentChange(
                type=ChangeType.TITLE,
                old_value=reference.page_title,
                new_value=page.title,
                timestamp=timestamp,
            )
        )
    if knowledge.content != page.content:
        changes.append(
            ContentChange(
                type=ChangeType.CONTENT,
                old_value=_preview(knowledge.content),
                new_value=_preview(page.content),
                timestamp=timestamp,
            )
        )
    return changes


def is_due(reference: NotionReferenceRow, now: datetime) -> bool:
    if reference.last_synced_at is None:
        return True
    interval = SYNC_INTERVALS.get(reference.sync_frequency, DEFAULT_SYNC_INTERVAL)
    return now - reference.last_synced_at > interval


class NotionSyncEngine:
    def __init__(
        self,
        sessions: async_sessionmaker,
        source: NotionSource,
        queue: GenerationQueue,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        backoff: BackoffPolicy = SYNC_BACKOFF,
        call_timeout: float = 120.0,
        enqueue_delay: timedelta = timedelta(minutes=5),
        enqueue_priority: int = 5,
        respect_frequency: bool = False,
    ):
        self._sessions = sessions
        self._source = source
        self._queue = queue
        self._clock = clock
        self._sleep = sleep
        self._backoff = backoff
        self._timeout = call_timeout
        self._enqueue_delay = enqueue_delay
        self._enqueue_priority = enqueue_priority
        self._respect_frequency = respect_frequency

    async def sync_all_active_references(
        self,
        batch_size: int = 20,
        max_retries: int = 3,
        sync_type: SyncType = SyncType.SCHEDULED,
    ) -> list[SyncResult]:
        """Sync the stalest auto-sync references concurrently, each with its own retries."""
        now = self._clock()
        async with self._sessions() as session:
            result = await session.execute(
                select(NotionReferenceRow)
                .where(NotionReferenceRow.auto_sync_enabled.is_(True))
                .order_by(NotionReferenceRow.last_synced_at.asc().nulls_first())
                .limit(batch_size)
            )
            references = list(result.scalars())

        if self._respect_frequency:
            references = [reference for reference in references if is_due(reference, now)]

        logger.info("Found %d active Notion references to sync", len(references))
        return list(
            await asyncio.gather(
                *(
                    self._sync_with_retries(reference.id, max_retries, sync_type)
                    for reference in references
                )
            )
        )

    async def _sync_with_retries(
        self, reference_id: str, max_retries: int, sync_type: SyncType
    ) -> SyncResult:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(is_retryable),
                stop=stop_after_attempt(max_retries),
                wait=self._backoff,
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    return await self.sync_single_reference(reference_id, sync_type=sync_type)
        except Exception as exc:
            retryable = is_retryable(exc)
            message = f"Max retries exceeded: {exc}" if retryable else str(exc)
            logger.error(
                "Sync failed for reference %s: %s",
                reference_id,
                message,
                extra={"reference_id": reference_id, "stage": "sync"},
            )
            if retryable:
                async with self._sessions() as session:
                    self._add_sync_log(
                        session,
                        reference_id,
                        sync_type,
                        SyncResult(
                            reference_id=reference_id,
                            success=False,
                            changes_detected=False,
                            error=message,
                        ),
                    )
                    await session.commit()
            return SyncResult(
                reference_id=reference_id, success=False, changes_detected=False, error=message
            )

    def _add_sync_log(
        self, session: AsyncSession, reference_id: str, sync_type: SyncType, result: SyncResult
    ) -> None:
        session.add(
            SyncLogRow(
                notion_reference_id=reference_id,
                sync_type=sync_type,
                status=SyncStatus.SUCCESS if result.success else SyncStatus.ERROR,
                changes_detected=result.changes_detected,
                content_changes=(
                    [change.model_dump(mode="json") for change in result.content_changes]
                    if result.content_changes
                    else None
                ),
                error_message=result.error,
                sync_duration_ms=result.sync_duration_ms,
            )
        )

    async def sync_single_reference(
        self,
        reference_id: str,
        force_sync: bool = False,
        sync_type: SyncType = SyncType.SCHEDULED,
    ) -> SyncResult:
        """Fetch one referenced page and apply any upstream change.

        Raises:
            ReferenceNotFound: Unknown reference id.
            NotionAuthError: The Notion token was rejected.
            SourceUnavailableError: Notion could not be reached or did not answer in time.
        """
        started = time.monotonic()
        async with self._sessions() as session:
            reference = await repository.get_reference(session, reference_id)
            page_id = reference.page_id

        try:
            page = await self._fetch(page_id)
            result = await self._apply(reference_id, page, force_sync, sync_type, started)
        except Exception as exc:
            async with self._sessions() as session:
                self._add_sync_log(
                    session,
                    reference_id,
                    sync_type,
                    SyncResult(
                        reference_id=reference_id,
                        success=False,
                        changes_detected=False,
                        error=str(exc) or type(exc).__name__,
                        sync_duration_ms=_elapsed_ms(started),
                    ),
                )
                await session.commit()
            raise

        if result.changes_detected:
            result.enqueued = await self._enqueue(reference_id)
        return result

    async def _fetch(self, page_id: str) -> NotionPageContent:
        try:
            async with asyncio.timeout(self._timeout):
                return await self._source.fetch_page(page_id)
        except TimeoutError as exc:
            raise SourceUnavailableError(
                f"Notion did not respond within {self._timeout:g}s for page {page_id}"
            ) from exc

    async def _apply(
        self,
        reference_id: str,
        page: NotionPageContent,
        force_sync: bool,
        sync_type: SyncType,
        started: float,
    ) -> SyncResult:
        async with self._sessions() as session:
            reference = await repository.get_reference(session, reference_id)
            knowledge = await repository.get_knowledge(session, reference.knowledge_id)
            new_hash = compute_content_hash(page)

            if not force_sync and not detect_changes(reference, page, new_hash):
                result = SyncResult(
                    reference_id=reference_id,
                    success=True,
                    changes_detected=False,
                    sync_duration_ms=_elapsed_ms(started),
                )
                self._add_sync_log(session, reference_id, sync_type, result)
                await session.commit()
                logger.info("No changes for Notion reference %s", reference_id)
                return result

            now = self._clock()
            changes = analyze_content_changes(reference, knowledge, page, now)

            original = await self._find_duplicate_reference(session, new_hash, knowledge.id)
            if original is not None:
                original_article = await repository.latest_article(session, original.knowledge_id)
                repository.add_duplication(
                    session,
                    content_hash=new_hash,
                    similarity_score=1.0,
                    detection_method="sync_content_hash",
                    original_article_id=original_article.id if original_article else None,
                    original_knowledge_id=original.knowledge_id,
                    duplicate_knowledge_id=knowledge.id,
                )
                result = SyncResult(
                    reference_id=reference_id,
                    success=True,
                    changes_detected=False,
                    is_duplicate=True,
                    sync_duration_ms=_elapsed_ms(started),
                )
                self._add_sync_log(session, reference_id, sync_type, result)
                await session.commit()
                logger.info(
                    "Duplicate content for reference %s (matches knowledge %s), skipping",
                    reference_id,
                    original.knowledge_id,
                )
                return result

            knowledge.title = page.title
            knowledge.content = page.content
            knowledge.updated_at = now
            state.restart_cycle(knowledge)

            reference.last_content_hash = reference.content_hash or new_hash
            reference.content_hash = new_hash
            reference.last_synced_at = now
            reference.notion_updated_at = to_naive_utc(page.last_edited_time)
            reference.page_title = page.title
            reference.page_url = page.url

            result = SyncResult(
                reference_id=reference_id,
                success=True,
                changes_detected=True,
                content_changes=changes,
                sync_duration_ms=_elapsed_ms(started),
            )
            self._add_sync_log(session, reference_id, sync_type, result)
            await session.commit()

        logger.info(
            "Applied %d change(s) from Notion to knowledge %s",
            len(changes),
            reference.knowledge_id,
        )
        return result

    async def _find_duplicate_reference(
        self, session: AsyncSession, content_hash: str, knowledge_id: str
    ) -> NotionReferenceRow | None:
        result = await session.execute(
            select(NotionReferenceRow)
            .where(
                NotionReferenceRow.content_hash == content_hash,
                NotionReferenceRow.knowledge_id != knowledge_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _enqueue(self, reference_id: str) -> bool:
        async with self._sessions() as session:
            reference = await repository.get_reference(session, reference_id)
            knowledge_id = reference.knowledge_id
        try:
            await self._queue.enqueue(
                knowledge_id, priority=self._enqueue_priority, delay=self._enqueue_delay
            )
        except AlreadyQueued:
            logger.info("Knowledge %s is already in the generation queue", knowledge_id)
            return False
        return True

    async def should_sync(self, reference_id: str) -> bool:
        async with self._sessions() as session:
            reference = await session.get(NotionReferenceRow, reference_id)
        if reference is None or not reference.auto_sync_enabled:
            return False
        return is_due(reference, self._clock())

    async def get_sync_stats(self, days: int = 7) -> SyncStats:
        since = self._clock() - timedelta(days=days)
        async with self._sessions() as session:
            result = await session.execute(
                select(SyncLogRow.status, func.count())
                .where(SyncLogRow.created_at >= since)
                .group_by(SyncLogRow.status)
            )
            counts = {status: count for status, count in result}

        total = sum(counts.values())
        successful = counts.get(SyncStatus.SUCCESS, 0)
        return SyncStats(
            total_syncs=total,
            successful_syncs=successful,
            failed_syncs=counts.get(SyncStatus.ERROR, 0),
            success_rate=(successful / total * 100) if total else 0.0,
            period=f"{days} days",
        )

    async def list_sync_logs(self, reference_id: str, limit: int = 10) -> list[SyncLogRow]:
        async with self._sessions() as session:
            await repository.get_reference(session, reference_id)
            result = await session.execute(
                select(SyncLogRow)
                .where(SyncLogRow.notion_reference_id == reference_id)
                .order_by(SyncLogRow.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars())


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
