"""One scheduled cycle: Notion sync sweep, then queue processing, then stats.

The sweep runs first so pages that changed upstream can enqueue work before
the same cycle drains the queue.
"""

import logging
import time

from knowledge_pipeline.services import Services

logger = logging.getLogger(__name__)


async def collect_stats(services: Services) -> dict:
    sync_stats = await services.sync.get_sync_stats()
    queue_stats = await services.queue.get_queue_stats()
    return {"sync": sync_stats.model_dump(), "queue": queue_stats.model_dump()}


async def run_scheduled_cycle(services: Services) -> dict:
    """Run the sync sweep and queue processing once and return aggregate stats."""
    settings = services.settings
    started = time.monotonic()

    logger.info("Scheduled cycle step 1: syncing Notion references")
    sync_results = await services.sync.sync_all_active_references(
        batch_size=settings.sync_batch_size,
        max_retries=settings.sync_max_retries,
    )

    logger.info("Scheduled cycle step 2: processing generation queue")
    queue_results = await services.queue.process_queue(
        max_concurrent=settings.queue_max_concurrent,
        max_retries=settings.queue_max_retries,
    )

    stats = await collect_stats(services)
    processing_time_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Scheduled cycle finished in %dms: %d references synced, %d queue entries processed",
        processing_time_ms,
        len(sync_results),
        len(queue_results),
    )
    return {
        "success": True,
        "processing_time_ms": processing_time_ms,
        "synced": len(sync_results),
        "changes_detected": sum(1 for result in sync_results if result.changes_detected),
        "processed": len(queue_results),
        "succeeded": sum(1 for result in queue_results if result.success),
        "stats": stats,
    }
