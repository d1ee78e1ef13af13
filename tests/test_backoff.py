"""Tests for the shared exponential backoff policy."""

from datetime import timedelta

import pytest
from tenacity import RetryCallState

from knowledge_pipeline.backoff import QUEUE_BACKOFF, SYNC_BACKOFF, BackoffPolicy


def test_queue_backoff_doubles_in_minutes():
    """Queue delays after 1, 2, 3 failures are 2, 4, 8 minutes."""
    assert QUEUE_BACKOFF.delay(1) == timedelta(minutes=2)
    assert QUEUE_BACKOFF.delay(2) == timedelta(minutes=4)
    assert QUEUE_BACKOFF.delay(3) == timedelta(minutes=8)


def test_delays_strictly_increase_until_cap():
    """Each delay is larger than the previous one below the cap."""
    delays = [QUEUE_BACKOFF.delay(attempt) for attempt in range(8)]
    assert all(later > earlier for earlier, later in zip(delays, delays[1:]))


def test_delay_is_capped():
    """Large attempt counts never exceed the cap."""
    policy = BackoffPolicy(unit=timedelta(seconds=1), cap=timedelta(seconds=30))
    assert policy.delay(10) == timedelta(seconds=30)


def test_negative_attempt_rejected():
    with pytest.raises(ValueError):
        QUEUE_BACKOFF.delay(-1)


def test_sync_backoff_in_seconds():
    """Sync waits 2^attempt seconds."""
    assert SYNC_BACKOFF.seconds(1) == 2.0
    assert SYNC_BACKOFF.seconds(2) == 4.0


def test_policy_works_as_tenacity_wait():
    """Called with a retry state, returns seconds for the attempt number."""
    state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
    state.attempt_number = 3
    assert SYNC_BACKOFF(state) == 8.0
