"""Durable generation queue with bounded concurrency, retry backoff and duplicate short-circuit.

Entries are claimed with a conditional UPDATE (only rows still ``pending``),
which is what keeps two concurrent ``process_queue`` calls from working the
same entry, and a partial unique index on ``knowledge_id`` keeps at most one
pending or processing entry per knowledge item. The in-memory ``_processing``
set only saves a round trip within one process.

Entries whose content fingerprint matches one already in flight are left
pending for a later call, so the duplicate check sees the first article
before the second item is generated.

The queue is the single place that turns a failure into retry-or-fail:

- retryable failure below the entry's ``max_retries``: back to ``pending``,
  ``scheduled_at`` pushed out by the backoff policy, knowledge item keeps
  its last completed stage with ``last_error`` set;
- terminal failure, or retries exhausted: entry ``failed``, knowledge
  item ``error``.

Every attempt appends exactly one queue-outcome ArticleLog row.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from knowledge_pipeline.backoff import QUEUE_BACKOFF, BackoffPolicy
from knowledge_pipeline.db import repository
from knowledge_pipeline.db.base import utcnow
from knowledge_pipeline.db.tables import GenerationQueueRow, KnowledgeRow, NotionReferenceRow
from knowledge_pipeline.errors import AlreadyQueued, StageError, is_retryable
from knowledge_pipeline.models.knowledge import KnowledgeStatus
from knowledge_pipeline.models.queue import GenerationResult, QueueStats, QueueStatus
from knowledge_pipeline.pipeline import state
from knowledge_pipeline.pipeline.duplicates import DuplicateDetector, content_fingerprint
from knowledge_pipeline.pipeline.stages import KnowledgePipeline

logger = logging.getLogger(__name__)


class GenerationQueue:
    def __init__(
        self,
        sessions: async_sessionmaker,
        pipeline: KnowledgePipeline,
        detector: DuplicateDetector,
        *,
        backoff: BackoffPolicy = QUEUE_BACKOFF,
        clock: Callable[[], datetime] = utcnow,
        default_priority: int = 5,
        default_max_retries: int = 3,
    ):
        self._sessions = sessions
        self._pipeline = pipeline
        self._detector = detector
        self._backoff = backoff
        self._clock = clock
        self.default_priority = default_priority
        self.default_max_retries = default_max_retries
        self._processing: set[str] = set()
        self._fingerprints_in_flight: set[str] = set()

    async def enqueue(
        self,
        knowledge_id: str,
        priority: int | None = None,
        delay: timedelta = timedelta(0),
        max_retries: int | None = None,
    ) -> GenerationQueueRow:
        """Insert a pending entry scheduled ``delay`` from now.

        Raises:
            KnowledgeNotFound: No such knowledge item.
            AlreadyQueued: The item already has a pending or processing entry.
        """
        async with self._sessions() as session:
            await repository.get_knowledge(session, knowledge_id)
            active = await repository.find_active_entry(session, knowledge_id)
            if active is not None:
                raise AlreadyQueued(knowledge_id, active.id)

            entry = GenerationQueueRow(
                knowledge_id=knowledge_id,
                status=QueueStatus.PENDING,
                priority=self.default_priority if priority is None else priority,
                retry_count=0,
                max_retries=self.default_max_retries if max_retries is None else max_retries,
                scheduled_at=self._clock() + delay,
            )
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError as exc:
                # Another enqueue won the race between the check and the insert
                await session.rollback()
                active = await repository.find_active_entry(session, knowledge_id)
                raise AlreadyQueued(knowledge_id, active.id if active else "") from exc

        logger.info(
            "Enqueued knowledge %s (entry %s, priority %d, at %s)",
            knowledge_id,
            entry.id,
            entry.priority,
            entry.scheduled_at.isoformat(),
        )
        return entry

    async def _due_entries(self, limit: int, max_retries: int) -> list[tuple[str, str, str]]:
        """Due entries as (entry id, knowledge id, content fingerprint), best first."""
        async with self._sessions() as session:
            result = await session.execute(
                select(
                    GenerationQueueRow.id,
                    GenerationQueueRow.knowledge_id,
                    KnowledgeRow.title,
                    KnowledgeRow.content,
                )
                .join(KnowledgeRow, KnowledgeRow.id == GenerationQueueRow.knowledge_id)
                .where(
                    GenerationQueueRow.status == QueueStatus.PENDING,
                    GenerationQueueRow.scheduled_at <= self._clock(),
                    GenerationQueueRow.retry_count < max_retries,
                )
                .order_by(GenerationQueueRow.priority.asc(), GenerationQueueRow.created_at.asc())
                .limit(limit)
            )
            return [
                (row.id, row.knowledge_id, content_fingerprint(row.title, row.content))
                for row in result
            ]

    async def _claim(self, entry_id: str) -> bool:
        """Atomically move ``entry_id`` from pending to processing."""
        async with self._sessions() as session:
            result = await session.execute(
                update(GenerationQueueRow)
                .where(
                    GenerationQueueRow.id == entry_id,
                    GenerationQueueRow.status == QueueStatus.PENDING,
                )
                .values(status=QueueStatus.PROCESSING, started_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def process_queue(
        self, max_concurrent: int = 5, max_retries: int = 3
    ) -> list[GenerationResult]:
        """Process up to ``max_concurrent`` due entries concurrently.

        Returns one result per entry this call actually claimed.
        """
        due = await self._due_entries(max_concurrent, max_retries)
        if not due:
            logger.info("No pending queue entries found")
            return []

        batch = []
        for entry_id, knowledge_id, fingerprint in due:
            if fingerprint in self._fingerprints_in_flight:
                logger.info(
                    "Deferring queue entry %s: identical content is already being generated",
                    entry_id,
                )
                continue
            self._fingerprints_in_flight.add(fingerprint)
            batch.append((entry_id, knowledge_id, fingerprint))

        logger.info("Processing %d queue entries", len(batch))
        outcomes = await asyncio.gather(
            *(
                self._process_guarded(entry_id, knowledge_id, fingerprint)
                for entry_id, knowledge_id, fingerprint in batch
            )
        )
        return [outcome for outcome in outcomes if outcome is not None]

    async def _process_guarded(
        self, entry_id: str, knowledge_id: str, fingerprint: str
    ) -> GenerationResult | None:
        if entry_id in self._processing:
            self._fingerprints_in_flight.discard(fingerprint)
            return None
        self._processing.add(entry_id)
        try:
            if not await self._claim(entry_id):
                logger.info("Queue entry %s was claimed elsewhere, skipping", entry_id)
                return None
            return await self._process_entry(entry_id, knowledge_id)
        finally:
            self._processing.discard(entry_id)
            self._fingerprints_in_flight.discard(fingerprint)

    async def _notion_page_id(self, session, knowledge_id: str) -> str | None:
        result = await session.execute(
            select(NotionReferenceRow.page_id).where(NotionReferenceRow.knowledge_id == knowledge_id)
        )
        return result.scalar_one_or_none()

    async def _process_entry(self, entry_id: str, knowledge_id: str) -> GenerationResult:
        started = time.monotonic()
        try:
            async with self._sessions() as session:
                knowledge = await repository.get_knowledge(session, knowledge_id)
                check = await self._detector.check(session, knowledge)
                if check.is_duplicate:
                    elapsed = _elapsed_ms(started)
                    entry = await session.get(GenerationQueueRow, entry_id)
                    entry.status = QueueStatus.COMPLETED
                    entry.is_duplicate = True
                    entry.completed_at = self._clock()
                    entry.error_message = None
                    repository.add_article_log(
                        session,
                        knowledge_id=knowledge_id,
                        article_id=check.original_article_id,
                        queue_entry_id=entry_id,
                        action="duplicate",
                        status="success",
                        message=(
                            f"Duplicate of knowledge {check.original_knowledge_id} "
                            f"({check.detection_method}, score {check.similarity_score:.2f})"
                        ),
                        details={
                            "queue_entry_id": entry_id,
                            "processing_time_ms": elapsed,
                            "similarity_score": check.similarity_score,
                        },
                    )
                    await session.commit()
                    return GenerationResult(
                        entry_id=entry_id,
                        knowledge_id=knowledge_id,
                        success=True,
                        is_duplicate=True,
                        article_id=check.original_article_id,
                        processing_time_ms=elapsed,
                    )

            article_id = await self._pipeline.run(knowledge_id)
        except Exception as exc:
            return await self._handle_failure(entry_id, knowledge_id, exc, started)

        elapsed = _elapsed_ms(started)
        async with self._sessions() as session:
            entry = await session.get(GenerationQueueRow, entry_id)
            entry.status = QueueStatus.COMPLETED
            entry.article_id = article_id
            entry.completed_at = self._clock()
            entry.error_message = None
            repository.add_article_log(
                session,
                knowledge_id=knowledge_id,
                article_id=article_id,
                queue_entry_id=entry_id,
                action="created",
                status="success",
                message="Article generated and published automatically",
                details={
                    "queue_entry_id": entry_id,
                    "processing_time_ms": elapsed,
                    "notion_page_id": await self._notion_page_id(session, knowledge_id),
                },
            )
            await session.commit()

        logger.info("Queue entry %s completed with article %s", entry_id, article_id)
        return GenerationResult(
            entry_id=entry_id,
            knowledge_id=knowledge_id,
            success=True,
            article_id=article_id,
            processing_time_ms=elapsed,
        )

    async def _handle_failure(
        self, entry_id: str, knowledge_id: str, exc: Exception, started: float
    ) -> GenerationResult:
        message = str(exc.cause if isinstance(exc, StageError) else exc) or type(exc).__name__
        stage = exc.stage if isinstance(exc, StageError) else "queue"
        retryable = is_retryable(exc)
        elapsed = _elapsed_ms(started)

        async with self._sessions() as session:
            entry = await session.get(GenerationQueueRow, entry_id)
            if entry is None:
                logger.error("Queue entry %s vanished while failing: %s", entry_id, message)
                return GenerationResult(
                    entry_id=entry_id,
                    knowledge_id=knowledge_id,
                    success=False,
                    error=message,
                    processing_time_ms=elapsed,
                )
            entry.retry_count += 1
            entry.error_message = message
            retry_scheduled = retryable and entry.retry_count < entry.max_retries

            knowledge = await session.get(KnowledgeRow, knowledge_id)
            if retry_scheduled:
                entry.status = QueueStatus.PENDING
                entry.scheduled_at = self._clock() + self._backoff.delay(entry.retry_count)
                if knowledge is not None:
                    knowledge.last_error = message
            else:
                entry.status = QueueStatus.FAILED
                entry.completed_at = self._clock()
                if knowledge is not None:
                    state.mark_error(knowledge, message)

            if knowledge is not None:
                repository.add_article_log(
                    session,
                    knowledge_id=knowledge_id,
                    queue_entry_id=entry_id,
                    action="failed",
                    status="error",
                    message=message,
                    details={
                        "queue_entry_id": entry_id,
                        "processing_time_ms": elapsed,
                        "stage": stage,
                        "retry_count": entry.retry_count,
                        "retry_scheduled": retry_scheduled,
                    },
                )
            await session.commit()

        if retry_scheduled:
            logger.warning(
                "Scheduled retry %d/%d for queue entry %s at %s (knowledge %s, stage %s): %s",
                entry.retry_count,
                entry.max_retries,
                entry_id,
                entry.scheduled_at.isoformat(),
                knowledge_id,
                stage,
                message,
            )
        else:
            logger.error(
                "Queue entry %s failed after %d attempts (knowledge %s, stage %s): %s",
                entry_id,
                entry.retry_count,
                knowledge_id,
                stage,
                message,
            )
        return GenerationResult(
            entry_id=entry_id,
            knowledge_id=knowledge_id,
            success=False,
            retry_scheduled=retry_scheduled,
            error=message,
            processing_time_ms=elapsed,
        )

    async def get_queue_stats(self) -> QueueStats:
        async with self._sessions() as session:
            result = await session.execute(
                select(GenerationQueueRow.status, func.count()).group_by(GenerationQueueRow.status)
            )
            counts = {status: count for status, count in result}

        total = sum(counts.values())
        completed = counts.get(QueueStatus.COMPLETED, 0)
        return QueueStats(
            total=total,
            pending=counts.get(QueueStatus.PENDING, 0),
            processing=counts.get(QueueStatus.PROCESSING, 0),
            completed=completed,
            failed=counts.get(QueueStatus.FAILED, 0),
            success_rate=(completed / total * 100) if total else 0.0,
        )

    async def retry_failed_entries(self) -> int:
        """Put failed entries back to pending with a fresh retry budget.

        Knowledge items in ``error`` are reset to their pre-error stage. Entries
        whose knowledge item already has another active entry are left failed.
        Returns how many entries were re-queued.
        """
        async with self._sessions() as session:
            result = await session.execute(
                select(GenerationQueueRow.id)
                .where(GenerationQueueRow.status == QueueStatus.FAILED)
                .order_by(GenerationQueueRow.created_at.asc())
            )
            entry_ids = list(result.scalars())

        requeued = 0
        for entry_id in entry_ids:
            if await self._requeue_failed(entry_id):
                requeued += 1

        logger.info("Re-queued %d failed entries", requeued)
        return requeued

    async def _requeue_failed(self, entry_id: str) -> bool:
        async with self._sessions() as session:
            entry = await session.get(GenerationQueueRow, entry_id)
            if entry is None or entry.status != QueueStatus.FAILED:
                return False
            knowledge_id = entry.knowledge_id
            if await repository.find_active_entry(session, knowledge_id) is not None:
                return False
            knowledge = await session.get(KnowledgeRow, knowledge_id)
            entry.status = QueueStatus.PENDING
            entry.retry_count = 0
            entry.scheduled_at = self._clock()
            entry.started_at = None
            entry.completed_at = None
            entry.error_message = None
            if knowledge is not None and knowledge.status == KnowledgeStatus.ERROR:
                state.reset(knowledge)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "Knowledge %s was queued concurrently, leaving entry %s failed",
                    knowledge_id,
                    entry_id,
                )
                return False
        return True


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
