"""
Jira REST API projections.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field

from codeconnect.domain.base import DocumentModel


class JiraUserRef(DocumentModel):
    display_name: str = ""
    email_address: Optional[str] = None

    @classmethod
    def from_api(cls, data: Optional[dict[str, Any]]) -> Optional["JiraUserRef"]:
        if not data:
            return None
        return cls(
            display_name=data.get("displayName", ""),
            email_address=data.get("emailAddress"),
        )


class JiraComment(DocumentModel):
    id: str
    author: JiraUserRef = Field(default_factory=JiraUserRef)
    body: str = ""
    created: Optional[str] = None
    updated: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "JiraComment":
        return cls(
            id=str(data.get("id", "")),
            author=JiraUserRef.from_api(data.get("author")) or JiraUserRef(),
            body=data.get("body") or "",
            created=data.get("created"),
            updated=data.get("updated"),
        )


class JiraIssue(DocumentModel):
    """Flattened view of ``/rest/api/2/issue/{key}``."""

    id: str
    key: str
    summary: str = ""
    description: Optional[str] = None
    status: str = "Unknown"
    status_category: str = "unknown"
    priority: Optional[str] = None
    assignee: Optional[JiraUserRef] = None
    reporter: Optional[JiraUserRef] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    resolution_date: Optional[str] = None
    issue_type: str = "Task"
    project_key: str = ""
    project_name: str = ""
    parent_key: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list)
    fix_versions: list[str] = Field(default_factory=list)
    comments: Optional[list[JiraComment]] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "JiraIssue":
        fields = data.get("fields") or {}
        status = fields.get("status") or {}
        priority = fields.get("priority") or {}
        issue_type = fields.get("issuetype") or {}
        project = fields.get("project") or {}
        parent = fields.get("parent") or {}
        return cls(
            id=str(data.get("id", "")),
            key=data.get("key", ""),
            summary=fields.get("summary") or "",
            description=fields.get("description"),
            status=status.get("name") or "Unknown",
            status_category=(status.get("statusCategory") or {}).get("key") or "unknown",
            priority=priority.get("name"),
            assignee=JiraUserRef.from_api(fields.get("assignee")),
            reporter=JiraUserRef.from_api(fields.get("reporter")),
            created=fields.get("created"),
            updated=fields.get("updated"),
            resolution_date=fields.get("resolutiondate"),
            issue_type=issue_type.get("name") or "Task",
            project_key=project.get("key") or "",
            project_name=project.get("name") or "",
            parent_key=parent.get("key"),
            labels=fields.get("labels") or [],
            components=[c.get("name", "") for c in fields.get("components") or []],
            fix_versions=[v.get("name", "") for v in fields.get("fixVersions") or []],
        )


class JiraIssueType(DocumentModel):
    id: str = ""
    name: str
    subtask: bool = False
    description: Optional[str] = None


class JiraIssueReference(DocumentModel):
    """A Jira key found in PR text."""

    issue_key: str
    context: Literal["title", "description", "branch"]
    source: str


class JiraAttachment(DocumentModel):
    """Attachment as posted by the client: base64 content plus metadata."""

    file_name: str
    mime_type: str = "application/octet-stream"
    content: str


class CreatedIssue(DocumentModel):
    issue_key: str
    issue_id: str = ""
    issue_url: str
    attachments: list[str] = Field(default_factory=list)
