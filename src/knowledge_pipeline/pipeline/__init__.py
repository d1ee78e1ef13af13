"""Pipeline orchestration: status state machine, stages, generation queue and Notion sync."""

from knowledge_pipeline.pipeline.duplicates import (
    DuplicateCheck,
    DuplicateDetector,
    content_fingerprint,
    title_similarity,
)
from knowledge_pipeline.pipeline.queue import GenerationQueue
from knowledge_pipeline.pipeline.stages import KnowledgePipeline
from knowledge_pipeline.pipeline.sync import NotionSyncEngine, compute_content_hash

__all__ = [
    "DuplicateCheck",
    "DuplicateDetector",
    "GenerationQueue",
    "KnowledgePipeline",
    "NotionSyncEngine",
    "compute_content_hash",
    "content_fingerprint",
    "title_similarity",
]
