"""Relational storage: engine/session setup, tables and query helpers."""

from knowledge_pipeline.db.base import (
    Base,
    create_engine,
    create_session_factory,
    init_models,
    utcnow,
)

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "init_models",
    "utcnow",
]
