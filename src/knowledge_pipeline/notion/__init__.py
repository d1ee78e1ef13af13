"""Notion input: page retrieval, block flattening and workspace search."""

from knowledge_pipeline.notion.blocks import blocks_to_text, extract_title, rich_text_to_text
from knowledge_pipeline.notion.client import NotionSource, create_notion_client, extract_page_id

__all__ = [
    "blocks_to_text",
    "create_notion_client",
    "extract_page_id",
    "extract_title",
    "NotionSource",
    "rich_text_to_text",
]
