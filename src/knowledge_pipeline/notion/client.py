"""Notion content source: page retrieval and workspace search.

Wraps notion_client.AsyncClient. Translates Notion API failures into the
pipeline error taxonomy: 401 becomes NotionAuthError (terminal), everything
else becomes SourceUnavailableError (retryable).
"""

import logging
import re

import httpx
from notion_client import AsyncClient
from notion_client import errors as notion_errors
from notion_client.helpers import async_collect_paginated_api

from knowledge_pipeline.config import Settings
from knowledge_pipeline.errors import ConfigurationError, NotionAuthError, SourceUnavailableError
from knowledge_pipeline.models.sync import NotionPageContent, PageSummary
from knowledge_pipeline.notion.blocks import blocks_to_text, extract_title

logger = logging.getLogger(__name__)

_NOTION_FAILURES = (
    notion_errors.HTTPResponseError,
    notion_errors.RequestTimeoutError,
    httpx.TransportError,
)

_PAGE_ID_PATTERNS = [
    re.compile(r"notion\.so/(?:[^/]+/)?(?:[^/?#]*-)?([a-f0-9]{32})"),
    re.compile(r"([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})"),
    re.compile(r"^([a-f0-9]{32})$"),
]


def extract_page_id(url_or_id: str) -> str | None:
    """Extract a dash-less 32-hex page id from a Notion URL or raw id."""
    candidate = url_or_id.strip().lower()
    for pattern in _PAGE_ID_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1).replace("-", "")
    return None


def create_notion_client(settings: Settings) -> AsyncClient | None:
    """Return an AsyncClient, or None when no integration token is configured."""
    if not settings.notion_api_key:
        return None
    return AsyncClient(auth=settings.notion_api_key)


def _translate_error(exc: Exception, page_id: str | None = None) -> Exception:
    if isinstance(exc, notion_errors.APIResponseError) and exc.status == 401:
        return NotionAuthError("Notion rejected the integration token (401)")
    target = f" for page {page_id}" if page_id else ""
    return SourceUnavailableError(f"Notion request failed{target}: {exc}")


class NotionSource:
    """Fetches Notion pages as normalized text."""

    def __init__(self, client: AsyncClient | None):
        self._client = client

    def _require_client(self) -> AsyncClient:
        if self._client is None:
            raise ConfigurationError("NOTION_API_KEY is not configured")
        return self._client

    async def fetch_page(self, page_id: str) -> NotionPageContent:
        """Retrieve a page and flatten its blocks into text.

        Raises:
            NotionAuthError: The integration token is invalid.
            SourceUnavailableError: Any other Notion or network failure.
        """
        client = self._require_client()
        clean_id = page_id.replace("-", "")
        try:
            page = await client.pages.retrieve(page_id=clean_id)
            blocks = await async_collect_paginated_api(
                client.blocks.children.list, block_id=clean_id
            )
        except _NOTION_FAILURES as exc:
            logger.warning("Notion fetch failed for page %s: %s", clean_id, exc)
            raise _translate_error(exc, clean_id) from exc

        return NotionPageContent(
            id=page["id"],
            title=extract_title(page.get("properties", {})),
            content=blocks_to_text(blocks),
            url=page.get("url") or f"https://notion.so/{clean_id}",
            created_time=page.get("created_time"),
            last_edited_time=page["last_edited_time"],
        )

    async def search(self, query: str) -> list[PageSummary]:
        """Search the workspace for pages, most recently edited first."""
        client = self._require_client()
        try:
            response = await client.search(
                query=query,
                filter={"value": "page", "property": "object"},
                sort={"direction": "descending", "timestamp": "last_edited_time"},
            )
        except _NOTION_FAILURES as exc:
            logger.warning("Notion search failed for %r: %s", query, exc)
            raise _translate_error(exc) from exc

        return [
            PageSummary(
                id=result["id"],
                title=extract_title(result.get("properties", {})),
                url=result.get("url", ""),
                last_edited_time=result.get("last_edited_time"),
            )
            for result in response.get("results", [])
            if result.get("object") == "page"
        ]
