"""GitHub publishing: contents API client and the article publisher."""

from knowledge_pipeline.github.client import (
    CommitResult,
    GitHubClient,
    RemoteFile,
    create_github_client,
)
from knowledge_pipeline.github.publisher import (
    PublishFailure,
    Publisher,
    PublishResult,
    format_article,
    make_slug,
)

__all__ = [
    "CommitResult",
    "GitHubClient",
    "PublishFailure",
    "PublishResult",
    "Publisher",
    "RemoteFile",
    "create_github_client",
    "format_article",
    "make_slug",
]
