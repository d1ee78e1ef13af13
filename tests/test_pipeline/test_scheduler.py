"""Tests for the scheduled cycle."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

from knowledge_pipeline.config import Settings
from knowledge_pipeline.models.queue import GenerationResult, QueueStats
from knowledge_pipeline.models.sync import SyncResult, SyncStats
from knowledge_pipeline.pipeline.scheduler import run_scheduled_cycle


def _make_services(calls: list[str], **settings_overrides):
    async def _sync_all(**kwargs):
        calls.append("sync")
        return [
            SyncResult(reference_id="r-1", success=True, changes_detected=True),
            SyncResult(reference_id="r-2", success=True, changes_detected=False),
        ]

    async def _process(**kwargs):
        calls.append("queue")
        return [
            GenerationResult(entry_id="e-1", knowledge_id="k-1", success=True),
            GenerationResult(entry_id="e-2", knowledge_id="k-2", success=False, error="boom"),
        ]

    sync = AsyncMock()
    sync.sync_all_active_references.side_effect = _sync_all
    sync.get_sync_stats.return_value = SyncStats(total_syncs=2, successful_syncs=2)
    queue = AsyncMock()
    queue.process_queue.side_effect = _process
    queue.get_queue_stats.return_value = QueueStats(total=2, completed=1, failed=1)

    settings = Settings(_env_file=None, **settings_overrides)
    return SimpleNamespace(settings=settings, sync=sync, queue=queue)


async def test_sync_runs_before_queue():
    """Changes found by the sweep can be processed in the same cycle."""
    calls = []
    services = _make_services(calls)

    await run_scheduled_cycle(services)

    assert calls == ["sync", "queue"]


async def test_cycle_passes_configured_limits():
    services = _make_services(
        [], sync_batch_size=7, sync_max_retries=2, queue_max_concurrent=3, queue_max_retries=4
    )

    await run_scheduled_cycle(services)

    services.sync.sync_all_active_references.assert_awaited_once_with(
        batch_size=7, max_retries=2
    )
    services.queue.process_queue.assert_awaited_once_with(max_concurrent=3, max_retries=4)


async def test_cycle_summary():
    summary = await run_scheduled_cycle(_make_services([]))

    assert summary["success"] is True
    assert summary["synced"] == 2
    assert summary["changes_detected"] == 1
    assert summary["processed"] == 2
    assert summary["succeeded"] == 1
    assert summary["stats"]["queue"]["failed"] == 1
    assert summary["stats"]["sync"]["total_syncs"] == 2
    assert summary["processing_time_ms"] >= 0
