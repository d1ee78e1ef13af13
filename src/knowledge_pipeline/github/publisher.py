"""Article publisher: front matter formatting, slugs and upsert to the articles repo.

Publish never raises for remote failures. It returns a PublishResult whose
``reason`` tells the caller whether the failure was a network problem, a
permission problem or a version conflict that survived one re-fetch.
"""

import logging
import re
from enum import Enum

import yaml
from pydantic import BaseModel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from knowledge_pipeline.errors import (
    PublishConflictError,
    PublishNetworkError,
    PublishPermissionError,
)
from knowledge_pipeline.github.client import GitHubClient
from knowledge_pipeline.models.knowledge import ArticleMetadata

logger = logging.getLogger(__name__)

_SLUG_MAX_LENGTH = 50
_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")


class PublishFailure(str, Enum):
    NETWORK = "network"
    PERMISSION = "permission"
    CONFLICT = "conflict"


class PublishResult(BaseModel):
    success: bool
    url: str | None = None
    sha: str | None = None
    path: str | None = None
    error: str | None = None
    reason: PublishFailure | None = None


def make_slug(title: str, suffix: str) -> str:
    """Build a filename slug from ``title`` plus a uniqueness ``suffix``.

    Non-ASCII titles collapse to an empty base, so ``article`` stands in.
    The result never exceeds 50 characters.
    """
    base = _SLUG_STRIP.sub("", title.lower())
    base = _WHITESPACE.sub("-", base.strip()).strip("-")
    base = base or "article"
    room = _SLUG_MAX_LENGTH - len(suffix) - 1
    base = base[:room].rstrip("-")
    return f"{base}-{suffix}"


def format_article(metadata: ArticleMetadata, body: str) -> str:
    """Prefix ``body`` with a YAML front matter block built from ``metadata``."""
    front_matter = yaml.safe_dump(
        metadata.model_dump(mode="json"),
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=None,
    )
    return f"---\n{front_matter}---\n\n{body}"


class Publisher:
    """Pushes formatted articles into ``articles_dir`` of the configured repo."""

    def __init__(self, github: GitHubClient, articles_dir: str = "articles"):
        self._github = github
        self.articles_dir = articles_dir.strip("/")

    def path_for(self, slug: str) -> str:
        return f"{self.articles_dir}/{slug}.md"

    async def _upsert(self, path: str, document: str, title: str) -> PublishResult:
        # Re-read the current version on every attempt so a retry uses a fresh sha
        existing = await self._github.get_file(path)
        sha = existing.sha if existing else None
        message = f"Update article: {title}" if existing else f"Add new article: {title}"
        commit = await self._github.upsert_file(path, document, message, sha=sha)
        return PublishResult(success=True, url=commit.url, sha=commit.sha, path=path)

    async def publish(self, metadata: ArticleMetadata, body: str, slug: str) -> PublishResult:
        """Create or update the article file for ``slug``.

        A version conflict is retried once with a re-fetched sha.

        Raises:
            ConfigurationError: GitHub credentials are not configured.
        """
        path = self.path_for(slug)
        document = format_article(metadata, body)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(PublishConflictError),
                stop=stop_after_attempt(2),
                reraise=True,
            ):
                with attempt:
                    result = await self._upsert(path, document, metadata.title)
        except PublishConflictError as exc:
            logger.warning("Publish conflict persisted for %s: %s", path, exc)
            return PublishResult(
                success=False, path=path, error=str(exc), reason=PublishFailure.CONFLICT
            )
        except PublishPermissionError as exc:
            logger.error("Publish refused for %s: %s", path, exc)
            return PublishResult(
                success=False, path=path, error=str(exc), reason=PublishFailure.PERMISSION
            )
        except PublishNetworkError as exc:
            logger.warning("Publish network failure for %s: %s", path, exc)
            return PublishResult(
                success=False, path=path, error=str(exc), reason=PublishFailure.NETWORK
            )

        logger.info("Published %s (sha %s)", path, result.sha)
        return result
