"""GitHub contents API client (async httpx).

Only the two calls the publisher needs: read a file's current version and
create-or-update a file. HTTP failures are mapped onto the pipeline errors.
"""

import base64
import logging

import httpx
from pydantic import BaseModel

from knowledge_pipeline.config import Settings
from knowledge_pipeline.errors import (
    ConfigurationError,
    PublishConflictError,
    PublishNetworkError,
    PublishPermissionError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"


class RemoteFile(BaseModel):
    path: str
    sha: str
    content: str


class CommitResult(BaseModel):
    url: str
    sha: str


def _raise_for_status(response: httpx.Response, path: str) -> None:
    if response.is_success:
        return
    detail = response.text.strip()[:300]
    if response.status_code in (401, 403):
        raise PublishPermissionError(
            f"GitHub refused access to {path} ({response.status_code}): {detail}"
        )
    if response.status_code in (409, 422):
        raise PublishConflictError(
            f"GitHub rejected the version of {path} ({response.status_code}): {detail}"
        )
    raise PublishNetworkError(f"GitHub API error for {path} ({response.status_code}): {detail}")


class GitHubClient:
    """Reads and writes files in one repository branch."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
    ):
        self._http = http
        self._token = token
        self.owner = owner
        self.repo = repo
        self.branch = branch

    def _headers(self) -> dict[str, str]:
        if not self._token or not self.owner:
            raise ConfigurationError("GITHUB_TOKEN and GITHUB_OWNER must be configured")
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }

    def _endpoint(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{path}"

    async def aclose(self) -> None:
        await self._http.aclose()

    def blob_url(self, path: str) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/blob/{self.branch}/{path}"

    async def get_file(self, path: str) -> RemoteFile | None:
        """Return the file's content and sha, or None if it does not exist."""
        headers = self._headers()
        try:
            response = await self._http.get(
                self._endpoint(path), params={"ref": self.branch}, headers=headers
            )
        except httpx.TransportError as exc:
            raise PublishNetworkError(f"Failed to reach GitHub API: {exc}") from exc

        if response.status_code == 404:
            return None
        _raise_for_status(response, path)

        data = response.json()
        # GitHub returns base64 with embedded newlines
        content = base64.b64decode(data.get("content", "")).decode("utf-8")
        return RemoteFile(path=path, sha=data["sha"], content=content)

    async def upsert_file(
        self, path: str, content: str, message: str, sha: str | None = None
    ) -> CommitResult:
        """Create ``path``, or update it when ``sha`` (its current version) is given.

        Raises:
            PublishConflictError: ``sha`` is stale or missing for an existing file.
            PublishPermissionError: The token cannot write to the repository.
            PublishNetworkError: Transport failure or server error.
        """
        headers = self._headers()
        payload = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            payload["sha"] = sha

        try:
            response = await self._http.put(self._endpoint(path), json=payload, headers=headers)
        except httpx.TransportError as exc:
            raise PublishNetworkError(f"Failed to reach GitHub API: {exc}") from exc
        _raise_for_status(response, path)

        data = response.json().get("content") or {}
        return CommitResult(
            url=data.get("html_url") or self.blob_url(path),
            sha=data["sha"],
        )


def create_github_client(settings: Settings) -> GitHubClient:
    http = httpx.AsyncClient(
        base_url=DEFAULT_API_URL,
        timeout=httpx.Timeout(30.0),
    )
    return GitHubClient(
        http,
        token=settings.github_token,
        owner=settings.github_owner,
        repo=settings.github_repo,
        branch=settings.github_branch,
    )
