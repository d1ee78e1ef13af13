"""Generation queue status and result types."""

from enum import Enum

from pydantic import BaseModel


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_QUEUE_STATUSES = (QueueStatus.PENDING, QueueStatus.PROCESSING)


class GenerationResult(BaseModel):
    """Outcome of one queue entry attempt."""

    entry_id: str
    knowledge_id: str
    success: bool
    article_id: str | None = None
    is_duplicate: bool = False
    retry_scheduled: bool = False
    error: str | None = None
    processing_time_ms: int = 0


class QueueStats(BaseModel):
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    success_rate: float = 0.0
