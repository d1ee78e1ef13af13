"""Exponential backoff policy shared by the generation queue and the sync engine."""

from dataclasses import dataclass
from datetime import timedelta

from tenacity import RetryCallState


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay of ``unit * base ** attempt``, capped at ``cap``.

    ``attempt`` is the number of failures so far (1 after the first failure),
    so the default queue policy waits 2, 4, 8... minutes.
    """

    unit: timedelta = timedelta(minutes=1)
    base: int = 2
    cap: timedelta = timedelta(hours=6)

    def delay(self, attempt: int) -> timedelta:
        """Return the wait before the next attempt after ``attempt`` failures."""
        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        raw = self.unit * (self.base**attempt)
        return min(raw, self.cap)

    def seconds(self, attempt: int) -> float:
        return self.delay(attempt).total_seconds()

    def __call__(self, retry_state: RetryCallState) -> float:
        """tenacity ``wait=`` hook: attempt_number counts completed attempts."""
        return self.seconds(retry_state.attempt_number)


QUEUE_BACKOFF = BackoffPolicy(unit=timedelta(minutes=1))
SYNC_BACKOFF = BackoffPolicy(unit=timedelta(seconds=1), cap=timedelta(minutes=5))
