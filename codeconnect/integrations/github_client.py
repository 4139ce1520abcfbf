"""
GitHub REST API client.
"""

import base64
from typing import Any, Optional

import httpx

from codeconnect.core.config import GitHubSettings
from codeconnect.core.exceptions import GitHubError
from codeconnect.integrations.base_client import BaseHTTPClient


class GitHubClient(BaseHTTPClient):
    """
    Thin wrapper over the GitHub endpoints used for repository analytics.
    Every method returns the decoded JSON as GitHub sends it.
    """

    error_class = GitHubError

    def __init__(
        self,
        config: GitHubSettings,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config.api_url, timeout=config.timeout, transport=transport)
        self.token = token or config.token

    @property
    def service_name(self) -> str:
        return "github"

    def _default_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def list_repos(self, per_page: int = 100, sort: str = "updated") -> list[dict[str, Any]]:
        return await self._get("/user/repos", params={"per_page": per_page, "sort": sort})

    async def list_commits(
        self,
        owner: str,
        repo: str,
        per_page: int = 30,
        author: Optional[str] = None,
        sha: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"per_page": per_page}
        if author:
            params["author"] = author
        if sha:
            params["sha"] = sha
        return await self._get(f"/repos/{owner}/{repo}/commits", params=params)

    async def get_commit(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}/commits/{sha}")

    async def list_pulls(
        self, owner: str, repo: str, state: str = "all", per_page: int = 30
    ) -> list[dict[str, Any]]:
        return await self._get(
            f"/repos/{owner}/{repo}/pulls", params={"state": state, "per_page": per_page}
        )

    async def get_pull(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}/pulls/{number}")

    async def get_pull_files(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        return await self._get(f"/repos/{owner}/{repo}/pulls/{number}/files")

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> dict[str, Any]:
        """
        Fetch a file and decode its base64 body.

        Returns:
            ``{"path", "sha", "size", "content"}`` with ``content`` as text
        """
        params = {"ref": ref} if ref else None
        data = await self._get(f"/repos/{owner}/{repo}/contents/{path}", params=params)
        if isinstance(data, list):
            raise GitHubError(f"Path is a directory: {path}", {"path": path})

        raw = data.get("content") or ""
        if data.get("encoding") == "base64":
            text = base64.b64decode(raw).decode("utf-8", errors="replace")
        else:
            text = raw
        return {
            "path": data.get("path", path),
            "sha": data.get("sha"),
            "size": data.get("size"),
            "content": text,
        }
