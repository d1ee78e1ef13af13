"""Notion sync result types and the normalized page shape the sync engine consumes."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class SyncType(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ChangeType(str, Enum):
    TITLE = "title"
    CONTENT = "content"
    PROPERTIES = "properties"


class NotionPageContent(BaseModel):
    """A Notion page fetched and flattened to plain text."""

    id: str
    title: str
    content: str
    url: str
    created_time: datetime | None = None
    last_edited_time: datetime


class PageSummary(BaseModel):
    """A search hit from the Notion workspace."""

    id: str
    title: str
    url: str
    last_edited_time: datetime | None = None


class ContentChange(BaseModel):
    """One field-level change detected between two syncs (previews truncated)."""

    type: ChangeType
    old_value: str
    new_value: str
    timestamp: datetime


class SyncResult(BaseModel):
    reference_id: str
    success: bool
    changes_detected: bool
    content_changes: list[ContentChange] = []
    is_duplicate: bool = False
    enqueued: bool = False
    error: str | None = None
    sync_duration_ms: int = 0


class SyncStats(BaseModel):
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    success_rate: float = 0.0
    period: str = "7 days"
