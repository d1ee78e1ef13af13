"""Data models and enums for the knowledge pipeline."""

from knowledge_pipeline.models.knowledge import (
    ArticleMetadata,
    ArticleType,
    ContentAnalysis,
    GeneratedArticle,
    GenerationOptions,
    KnowledgeStatus,
    SourceType,
    SyncFrequency,
)
from knowledge_pipeline.models.queue import GenerationResult, QueueStats, QueueStatus
from knowledge_pipeline.models.sync import (
    ContentChange,
    NotionPageContent,
    PageSummary,
    SyncResult,
    SyncStats,
    SyncType,
)

__all__ = [
    "ArticleMetadata",
    "ArticleType",
    "ContentAnalysis",
    "ContentChange",
    "GeneratedArticle",
    "GenerationOptions",
    "GenerationResult",
    "KnowledgeStatus",
    "NotionPageContent",
    "PageSummary",
    "QueueStats",
    "QueueStatus",
    "SourceType",
    "SyncFrequency",
    "SyncResult",
    "SyncStats",
    "SyncType",
]
