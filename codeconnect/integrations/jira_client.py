"""
Jira Cloud REST API (v2) client.
"""

import asyncio
import base64
from typing import Any, Optional

import httpx

from codeconnect.core.config import JiraSettings
from codeconnect.core.constants import JIRA_BATCH_SIZE, JIRA_USER_AGENT
from codeconnect.core.exceptions import ConfigurationError, JiraError
from codeconnect.core.logging import get_logger
from codeconnect.domain.jira import JiraComment, JiraIssue, JiraIssueType
from codeconnect.integrations.base_client import BaseHTTPClient

logger = get_logger(__name__)

# Statuses that mean "not visible to us" rather than a failure
_NOT_VISIBLE = (401, 403, 404)


class JiraClient(BaseHTTPClient):
    """
    Client for the Jira issue, comment, search and attachment endpoints.
    Authenticates with Basic auth (account email + API token).
    """

    error_class = JiraError

    def __init__(
        self,
        config: JiraSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config.base_url, timeout=config.timeout, transport=transport)
        self.config = config

    @property
    def service_name(self) -> str:
        return "jira"

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _default_headers(self) -> dict[str, str]:
        credentials = f"{self.config.email}:{self.config.api_token}".encode()
        return {
            "Authorization": f"Basic {base64.b64encode(credentials).decode()}",
            "Accept": "application/json",
            "X-Atlassian-Token": "no-check",
            "User-Agent": JIRA_USER_AGENT,
        }

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(
                "JIRA integration not configured",
                details={"required": ["JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN"]},
            )

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"

    async def _get_visible(self, endpoint: str) -> Optional[Any]:
        """GET that returns None when the resource is missing or not accessible."""
        self.ensure_configured()
        response = await self._request_raw("GET", endpoint)
        if response.status_code in _NOT_VISIBLE:
            logger.warning(
                "Jira resource not accessible",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            return None
        self._raise_for_status(response, endpoint)
        return response.json()

    async def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Create an issue.

        Returns:
            Jira's response: ``{"id", "key", "self"}``
        """
        self.ensure_configured()
        result = await self._post("/rest/api/2/issue", {"fields": fields})
        logger.info("Jira issue created", issue_key=result.get("key"))
        return result

    async def get_issue(self, issue_key: str) -> Optional[JiraIssue]:
        data = await self._get_visible(f"/rest/api/2/issue/{issue_key}")
        return JiraIssue.from_api(data) if data else None

    async def get_comments(self, issue_key: str) -> list[JiraComment]:
        data = await self._get_visible(f"/rest/api/2/issue/{issue_key}/comment")
        if not data:
            return []
        return [JiraComment.from_api(c) for c in data.get("comments") or []]

    async def get_issue_with_comments(self, issue_key: str) -> Optional[JiraIssue]:
        issue, comments = await asyncio.gather(
            self.get_issue(issue_key), self.get_comments(issue_key)
        )
        if issue is None:
            return None
        issue.comments = comments
        return issue

    async def add_comment(self, issue_key: str, body: str) -> Optional[JiraComment]:
        """Add a comment. Returns None when the issue is missing or not accessible."""
        self.ensure_configured()
        endpoint = f"/rest/api/2/issue/{issue_key}/comment"
        response = await self._request_raw("POST", endpoint, json={"body": body})
        if response.status_code in _NOT_VISIBLE:
            logger.warning("Cannot comment on Jira issue", issue_key=issue_key, status_code=response.status_code)
            return None
        self._raise_for_status(response, endpoint)
        return JiraComment.from_api(response.json())

    async def get_issues(self, issue_keys: list[str]) -> list[JiraIssue]:
        """Fetch several issues, five at a time; missing ones are skipped."""
        issues: list[JiraIssue] = []
        for start in range(0, len(issue_keys), JIRA_BATCH_SIZE):
            batch = issue_keys[start : start + JIRA_BATCH_SIZE]
            results = await asyncio.gather(*(self.get_issue(key) for key in batch))
            issues.extend(issue for issue in results if issue is not None)
        return issues

    async def get_project_issue_types(self, project_key: str) -> list[JiraIssueType]:
        self.ensure_configured()
        data = await self._get(f"/rest/api/2/issue/createmeta/{project_key}/issuetypes")
        if isinstance(data, dict) and isinstance(data.get("values"), list):
            values = data["values"]
        elif isinstance(data, list):
            values = data
        else:
            logger.warning("Unexpected issue types response", project_key=project_key)
            return []
        return [JiraIssueType.model_validate(v) for v in values]

    async def search(self, jql: str, max_results: int = 50) -> list[JiraIssue]:
        self.ensure_configured()
        data = await self._get("/rest/api/2/search", params={"jql": jql, "maxResults": max_results})
        return [JiraIssue.from_api(issue) for issue in (data or {}).get("issues") or []]

    async def upload_attachment(
        self,
        issue_key: str,
        file_name: str,
        content: bytes,
        mime_type: str,
    ) -> str:
        """
        Upload one attachment.

        Returns:
            The stored file name reported by Jira
        """
        self.ensure_configured()
        endpoint = f"/rest/api/2/issue/{issue_key}/attachments"
        result = await self._request(
            "POST",
            endpoint,
            files={"file": (file_name, content, mime_type)},
        )
        if isinstance(result, list) and result:
            return result[0].get("filename") or file_name
        return file_name

    async def health_check(self) -> bool:
        if not self.is_configured:
            return False
        response = await self._request_raw("GET", "/rest/api/2/myself")
        return response.status_code == 200
