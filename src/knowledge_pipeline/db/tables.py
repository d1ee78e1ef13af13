"""ORM table definitions.

JSON columns hold the structured payloads (tags, topics, analysis, article,
change lists); callers read and write plain lists/dicts and validate them
into pydantic models in ``db.repository``.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_pipeline.db.base import Base, new_id, utcnow
from knowledge_pipeline.models.knowledge import (
    ArticleType,
    KnowledgeStatus,
    SourceType,
    SyncFrequency,
)
from knowledge_pipeline.models.queue import QueueStatus
from knowledge_pipeline.models.sync import SyncStatus, SyncType


def _enum(enum_cls) -> Enum:
    """Store enum values (not member names) as plain strings."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class KnowledgeRow(Base):
    __tablename__ = "knowledge"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_type: Mapped[SourceType] = mapped_column(_enum(SourceType), nullable=False)
    source_url: Mapped[str | None] = mapped_column(String(2048))
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="uncategorized")
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[KnowledgeStatus] = mapped_column(
        _enum(KnowledgeStatus), nullable=False, default=KnowledgeStatus.DRAFT
    )
    # Where a manual reset returns the item after an error
    status_before_error: Mapped[KnowledgeStatus | None] = mapped_column(_enum(KnowledgeStatus))
    last_error: Mapped[str | None] = mapped_column(Text)

    content_analysis: Mapped[dict | None] = mapped_column(JSON)
    generated_article: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class NotionReferenceRow(Base):
    __tablename__ = "notion_references"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    knowledge_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    page_id: Mapped[str] = mapped_column(String(64), nullable=False)
    page_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    page_title: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    auto_sync_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sync_frequency: Mapped[SyncFrequency | None] = mapped_column(
        _enum(SyncFrequency), default=SyncFrequency.DAILY
    )

    content_hash: Mapped[str | None] = mapped_column(String(64), index=True)
    last_content_hash: Mapped[str | None] = mapped_column(String(64))
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime)
    notion_updated_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class ArticleRow(Base):
    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    knowledge_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge.id", ondelete="CASCADE"), index=True, nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(80), nullable=False)
    emoji: Mapped[str] = mapped_column(String(16), nullable=False, default="📝")
    type: Mapped[ArticleType] = mapped_column(
        _enum(ArticleType), nullable=False, default=ArticleType.TECH
    )
    topics: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    stats: Mapped[dict | None] = mapped_column(JSON)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    github_path: Mapped[str | None] = mapped_column(String(500))
    github_url: Mapped[str | None] = mapped_column(String(2048))
    github_sha: Mapped[str | None] = mapped_column(String(64))
    published_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class ArticleLogRow(Base):
    """Append-only outcome log for generation attempts and publishes."""

    __tablename__ = "article_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    knowledge_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge.id", ondelete="CASCADE"), index=True, nullable=False
    )
    article_id: Mapped[str | None] = mapped_column(String(36))
    queue_entry_id: Mapped[str | None] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class GenerationQueueRow(Base):
    __tablename__ = "generation_queue"
    __table_args__ = (
        Index("ix_generation_queue_status_scheduled", "status", "scheduled_at"),
        # At most one pending or processing entry per knowledge item
        Index(
            "ux_generation_queue_active_knowledge",
            "knowledge_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'processing')"),
            postgresql_where=text("status IN ('pending', 'processing')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    knowledge_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge.id", ondelete="CASCADE"), index=True, nullable=False
    )
    status: Mapped[QueueStatus] = mapped_column(
        _enum(QueueStatus), nullable=False, default=QueueStatus.PENDING
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    error_message: Mapped[str | None] = mapped_column(Text)
    is_duplicate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    article_id: Mapped[str | None] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class ArticleDuplicationRow(Base):
    """Append-only audit of detected duplicates. Never updated or deleted."""

    __tablename__ = "article_duplications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    original_article_id: Mapped[str | None] = mapped_column(String(36))
    original_knowledge_id: Mapped[str | None] = mapped_column(String(36))
    duplicate_knowledge_id: Mapped[str | None] = mapped_column(String(36))
    duplicate_content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    detection_method: Mapped[str] = mapped_column(String(32), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class SyncLogRow(Base):
    """Append-only record of every Notion sync attempt."""

    __tablename__ = "notion_sync_logs"
    __table_args__ = (
        Index("ix_notion_sync_logs_reference_created", "notion_reference_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    notion_reference_id: Mapped[str] = mapped_column(
        ForeignKey("notion_references.id", ondelete="CASCADE"), nullable=False
    )
    sync_type: Mapped[SyncType] = mapped_column(_enum(SyncType), nullable=False)
    status: Mapped[SyncStatus] = mapped_column(_enum(SyncStatus), nullable=False)
    changes_detected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    content_changes: Mapped[list | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text)
    sync_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
