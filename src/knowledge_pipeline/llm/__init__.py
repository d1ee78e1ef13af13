"""LLM processing: structured content analysis and article generation via Gemini.

Public API:
    GeminiWriter(client, model).analyze(content, title) -> ContentAnalysis
    GeminiWriter(client, model).generate(content, analysis, options) -> GeneratedArticle
"""

from knowledge_pipeline.llm.client import create_gemini_client
from knowledge_pipeline.llm.processor import GeminiWriter, parse_structured
from knowledge_pipeline.llm.schemas import LLMAnalysis, LLMArticle

__all__ = [
    "create_gemini_client",
    "GeminiWriter",
    "LLMAnalysis",
    "LLMArticle",
    "parse_structured",
]
