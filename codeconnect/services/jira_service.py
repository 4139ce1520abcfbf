"""
Jira service: issues and subtasks raised from chat feedback, plus issue
lookups used as context for pull-request analytics.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any, Optional

from codeconnect.core.config import JiraSettings
from codeconnect.core.constants import (
    JIRA_DEFAULT_ISSUE_TYPE,
    JIRA_DESCRIPTION_PREVIEW,
    JIRA_ISSUE_KEY_PATTERN,
    JIRA_SUBTASK_FALLBACK_TYPE,
    JIRA_SUBTASK_LABELS,
)
from codeconnect.core.exceptions import (
    CodeConnectError,
    JiraError,
    JiraIssueNotFoundError,
    ValidationError,
)
from codeconnect.core.logging import get_logger
from codeconnect.domain.jira import (
    CreatedIssue,
    JiraAttachment,
    JiraComment,
    JiraIssue,
    JiraIssueReference,
)
from codeconnect.domain.user import User
from codeconnect.integrations.jira_client import JiraClient

logger = get_logger(__name__)

_ISSUE_KEY_RE = re.compile(JIRA_ISSUE_KEY_PATTERN)


# =============================================================================
# Pure helpers
# =============================================================================


def reporter_footer(name: Optional[str], email: Optional[str]) -> str:
    return f"\n\n--- Reported by ---\nUser: {name or 'Unknown'}\nEmail: {email or 'Unknown'}"


def parse_attachment(raw: Any) -> JiraAttachment:
    """
    Parse an attachment posted as a JSON string (or object) with
    ``fileName``, ``content`` (base64) and ``mimeType``.
    """
    data = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(data, dict):
        raise ValueError("Attachment must be a JSON object")
    return JiraAttachment.model_validate(data)


def extract_issue_references(
    title: str,
    description: Optional[str] = None,
    branch: Optional[str] = None,
) -> list[JiraIssueReference]:
    """
    Find Jira keys (``ABC-123``) in a PR title, description and branch name.

    Each key is reported once, with the first place it was seen.
    """
    references: list[JiraIssueReference] = []
    seen: set[str] = set()
    for context, text in (("title", title), ("description", description), ("branch", branch)):
        if not text:
            continue
        for match in _ISSUE_KEY_RE.finditer(text):
            key = match.group(1)
            if key in seen:
                continue
            seen.add(key)
            references.append(JiraIssueReference(issue_key=key, context=context, source=text))
    return references


def format_issue_for_ai(issue: JiraIssue) -> str:
    sections = [
        f"{issue.key}: {issue.summary}",
        f"Status: {issue.status} | Type: {issue.issue_type}",
    ]
    if issue.priority:
        sections.append(f"Priority: {issue.priority}")
    if issue.description:
        description = issue.description
        if len(description) > JIRA_DESCRIPTION_PREVIEW:
            description = description[:JIRA_DESCRIPTION_PREVIEW] + "..."
        sections.append(f"Description: {description}")
    return " | ".join(sections)


def format_issues_for_ai(issues: list[JiraIssue]) -> str:
    return "\n".join(format_issue_for_ai(issue) for issue in issues)


def subtask_search_jql(project_key: str, chat_id: str, message_id: str) -> str:
    return (
        f'project = {project_key} AND issuetype = "{JIRA_SUBTASK_FALLBACK_TYPE}" '
        f'AND description ~ "{chat_id}" OR description ~ "{message_id}"'
    )


def _require(values: dict[str, Any]) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            {"missing": missing},
        )


# =============================================================================
# Service
# =============================================================================


class JiraService:
    """
    Creates Jira issues and subtasks from user feedback.

    All operations raise ``ConfigurationError`` when Jira credentials are not
    configured.
    """

    def __init__(self, client: JiraClient, config: Optional[JiraSettings] = None) -> None:
        self.client = client
        self.config = config or client.config

    async def _upload_attachments(self, issue_key: str, attachments: Optional[list[Any]]) -> list[str]:
        """Upload attachments one by one; a failed upload is recorded, not raised."""
        results: list[str] = []
        for raw in attachments or []:
            try:
                attachment = parse_attachment(raw)
            except (ValueError, TypeError) as e:
                logger.warning("Invalid attachment payload", issue_key=issue_key, error=str(e))
                results.append("Failed: unknown")
                continue

            try:
                content = base64.b64decode(attachment.content)
                stored = await self.client.upload_attachment(
                    issue_key, attachment.file_name, content, attachment.mime_type
                )
            except (binascii.Error, CodeConnectError) as e:
                logger.warning(
                    "Attachment upload failed",
                    issue_key=issue_key,
                    file_name=attachment.file_name,
                    error=str(e),
                )
                results.append(f"Failed: {attachment.file_name}")
                continue
            results.append(stored)
        return results

    async def create_issue(
        self,
        user: Optional[User],
        summary: str,
        description: str,
        project_key: str,
        issue_type: Optional[str] = None,
        priority: Optional[str] = None,
        labels: Optional[list[str]] = None,
        reporter_name: Optional[str] = None,
        reporter_email: Optional[str] = None,
        attachments: Optional[list[Any]] = None,
    ) -> CreatedIssue:
        """
        Create an issue with a reporter footer and upload its attachments.

        Raises:
            ValidationError: If summary, description or project key is missing
            ConfigurationError: If Jira is not configured
            JiraError: If Jira rejects the issue
        """
        _require({"summary": summary, "description": description, "projectKey": project_key})
        self.client.ensure_configured()

        name = reporter_name or (user.name if user else None)
        email = reporter_email or (user.email if user else None)

        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "description": description + reporter_footer(name, email),
            "issuetype": {"name": issue_type or JIRA_DEFAULT_ISSUE_TYPE},
            "labels": labels or [],
        }
        if priority:
            fields["priority"] = {"name": priority}

        created = await self.client.create_issue(fields)
        issue_key = created["key"]
        uploaded = await self._upload_attachments(issue_key, attachments)

        return CreatedIssue(
            issue_key=issue_key,
            issue_id=str(created.get("id", "")),
            issue_url=self.client.browse_url(issue_key),
            attachments=uploaded,
        )

    async def get_issue(self, issue_key: str, with_comments: bool = False) -> Optional[JiraIssue]:
        if with_comments:
            return await self.client.get_issue_with_comments(issue_key)
        return await self.client.get_issue(issue_key)

    async def get_issues(self, issue_keys: list[str]) -> list[JiraIssue]:
        return await self.client.get_issues(issue_keys)

    async def get_parent_task(self, issue_key: str) -> JiraIssue:
        issue = await self.client.get_issue(issue_key)
        if issue is None:
            raise JiraIssueNotFoundError(issue_key)
        return issue

    async def get_comments(self, issue_key: str) -> list[JiraComment]:
        if not issue_key:
            raise ValidationError("Issue key is required")
        return await self.client.get_comments(issue_key)

    async def add_comment(self, issue_key: str, comment: str) -> JiraComment:
        if not issue_key or not comment:
            raise ValidationError("Issue key and comment are required")
        created = await self.client.add_comment(issue_key, comment)
        if created is None:
            raise JiraIssueNotFoundError(issue_key)
        return created

    async def get_subtask_issue_type(self, project_key: str) -> str:
        """Name of the project's first subtask issue type, ``Sub-task`` when none is found."""
        try:
            issue_types = await self.client.get_project_issue_types(project_key)
        except JiraError as e:
            logger.warning("Issue type discovery failed", project_key=project_key, error=e.message)
            return JIRA_SUBTASK_FALLBACK_TYPE

        for issue_type in issue_types:
            if issue_type.subtask:
                return issue_type.name
        return JIRA_SUBTASK_FALLBACK_TYPE

    async def get_issue_types(self, project_key: Optional[str] = None) -> dict[str, Any]:
        project_key = project_key or self.config.project_key
        issue_types = await self.client.get_project_issue_types(project_key)
        return {
            "projectKey": project_key,
            "issueTypes": [t.to_api() for t in issue_types],
            "subtaskTypes": [t.to_api() for t in issue_types if t.subtask],
        }

    async def create_subtask(
        self,
        user: Optional[User],
        parent_task_key: str,
        summary: str,
        description: str,
        usability_percentage: Optional[float],
        chat_id: str,
        message_id: str,
        additional_details: Optional[str] = None,
        priority: Optional[str] = None,
        labels: Optional[list[str]] = None,
        attachments: Optional[list[Any]] = None,
    ) -> tuple[CreatedIssue, JiraIssue]:
        """
        Create a usability-feedback subtask under an existing task.

        Returns:
            The created subtask and its parent issue

        Raises:
            ValidationError: If a required field is missing or the percentage is not positive
            JiraIssueNotFoundError: If the parent task does not exist
        """
        _require({
            "parentTaskKey": parent_task_key,
            "summary": summary,
            "description": description,
            "usabilityPercentage": usability_percentage,
            "chatId": chat_id,
            "messageId": message_id,
        })
        if usability_percentage <= 0:
            raise ValidationError("usabilityPercentage must be greater than 0")
        self.client.ensure_configured()

        parent = await self.get_parent_task(parent_task_key)

        body = (
            f"{description}\n\n--- Context ---\n"
            f"Chat ID: {chat_id}\nMessage ID: {message_id}\nParent Task: {parent_task_key}"
        )
        if additional_details:
            body += f"\n\n--- Additional Details ---\n{additional_details}"
        body += f"\n\n--- Usability Metrics ---\nUsability Percentage: {_percent(usability_percentage)}%"
        body += reporter_footer(user.name if user else None, user.email if user else None)

        project_key = self.config.project_key
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "parent": {"key": parent_task_key},
            "summary": summary,
            "description": body,
            "issuetype": {"name": await self.get_subtask_issue_type(project_key)},
            "labels": [*(labels or []), *JIRA_SUBTASK_LABELS],
        }
        if priority:
            fields["priority"] = {"name": priority}

        created = await self.client.create_issue(fields)
        issue_key = created["key"]
        uploaded = await self._upload_attachments(issue_key, attachments)

        logger.info(
            "Jira subtask created",
            subtask_key=issue_key,
            parent_key=parent_task_key,
            chat_id=chat_id,
        )
        subtask = CreatedIssue(
            issue_key=issue_key,
            issue_id=str(created.get("id", "")),
            issue_url=self.client.browse_url(issue_key),
            attachments=uploaded,
        )
        return subtask, parent

    async def update_subtask(
        self,
        subtask_key: str,
        additional_feedback: str,
        usability_percentage: Optional[float] = None,
    ) -> JiraComment:
        _require({"subtaskKey": subtask_key, "additionalFeedback": additional_feedback})

        comment = f"Additional Feedback:\n{additional_feedback}"
        if usability_percentage:
            comment += f"\n\nUpdated Usability Percentage: {_percent(usability_percentage)}%"
        return await self.add_comment(subtask_key, comment)

    async def find_existing_subtasks(self, chat_id: str, message_id: str) -> list[JiraIssue]:
        jql = subtask_search_jql(self.config.project_key, chat_id, message_id)
        return await self.client.search(jql)

    async def lookup(
        self,
        issue_key: Optional[str] = None,
        issue_keys: Optional[list[str]] = None,
        extract_from: Optional[dict[str, Optional[str]]] = None,
    ) -> dict[str, Any]:
        """
        Fetch one issue, several issues, or the issues referenced in PR text.

        Raises:
            ValidationError: If none of the three inputs is given
        """
        if issue_key:
            issue = await self.client.get_issue(issue_key)
            return {"issue": issue.to_api() if issue else None, "found": issue is not None}

        if issue_keys:
            issues = await self.client.get_issues(issue_keys)
            return {
                "issues": [i.to_api() for i in issues],
                "found": len(issues),
                "total": len(issue_keys),
            }

        if extract_from is not None:
            references = extract_issue_references(
                extract_from.get("title") or "",
                extract_from.get("description"),
                extract_from.get("branchName"),
            )
            if not references:
                return {"references": [], "issues": [], "found": 0}

            keys = [ref.issue_key for ref in references]
            issues = await self.client.get_issues(keys)
            return {
                "references": [r.to_api() for r in references],
                "issues": [i.to_api() for i in issues],
                "found": len(issues),
                "total": len(keys),
            }

        raise ValidationError("Invalid request. Provide issueKey, issueKeys, or extractFrom parameters.")


def _percent(value: Optional[float]) -> str:
    if value is None:
        return "0"
    return str(int(value)) if float(value).is_integer() else str(value)
