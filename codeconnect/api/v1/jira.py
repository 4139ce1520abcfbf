"""
Jira endpoints: issues and usability-feedback subtasks.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from codeconnect.api.deps import get_current_user, get_jira_service
from codeconnect.core.exceptions import JiraIssueNotFoundError
from codeconnect.domain.base import DocumentModel
from codeconnect.domain.user import User
from codeconnect.services.jira_service import JiraService

router = APIRouter()


# Required fields are checked by the service so the client gets one
# "Missing required fields" message.
class CreateIssueRequest(DocumentModel):
    summary: Optional[str] = None
    description: Optional[str] = None
    project_key: Optional[str] = None
    issue_type: Optional[str] = None
    priority: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    reporter_name: Optional[str] = None
    reporter_email: Optional[str] = None
    attachments: list[Any] = Field(default_factory=list)


class CreateSubtaskRequest(DocumentModel):
    parent_task_key: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    usability_percentage: Optional[float] = None
    chat_id: Optional[str] = None
    message_id: Optional[str] = None
    additional_details: Optional[str] = None
    priority: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    attachments: list[Any] = Field(default_factory=list)


class UpdateSubtaskRequest(DocumentModel):
    subtask_key: Optional[str] = None
    additional_feedback: Optional[str] = None
    usability_percentage: Optional[float] = None


class CommentRequest(DocumentModel):
    comment: Optional[str] = None


class LookupRequest(DocumentModel):
    issue_key: Optional[str] = None
    issue_keys: Optional[list[str]] = None
    extract_from: Optional[dict[str, Optional[str]]] = None


@router.post("/jira/issues")
async def create_issue(
    request: CreateIssueRequest,
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    created = await service.create_issue(
        user,
        summary=request.summary,
        description=request.description,
        project_key=request.project_key,
        issue_type=request.issue_type,
        priority=request.priority,
        labels=request.labels,
        reporter_name=request.reporter_name,
        reporter_email=request.reporter_email,
        attachments=request.attachments,
    )
    return {"success": True, **created.to_api()}


@router.get("/jira/issues/{issue_key}")
async def get_issue(
    issue_key: str,
    include_comments: bool = Query(default=False, alias="includeComments"),
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    issue = await service.get_issue(issue_key, with_comments=include_comments)
    if issue is None:
        raise JiraIssueNotFoundError(issue_key)
    return {"success": True, "issue": issue.to_api()}


@router.get("/jira/issues/{issue_key}/comments")
async def get_comments(
    issue_key: str,
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    comments = await service.get_comments(issue_key)
    return {"success": True, "comments": [c.to_api() for c in comments]}


@router.post("/jira/issues/{issue_key}/comments")
async def add_comment(
    issue_key: str,
    request: CommentRequest,
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    comment = await service.add_comment(issue_key, request.comment)
    return {"success": True, "comment": comment.to_api()}


@router.get("/jira/subtasks")
async def find_subtasks(
    chat_id: str = Query(..., alias="chatId"),
    message_id: str = Query(..., alias="messageId"),
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    """Subtasks already raised for one assistant message."""
    subtasks = await service.find_existing_subtasks(chat_id, message_id)
    return {
        "success": True,
        "subtasks": [s.to_api() for s in subtasks],
        "count": len(subtasks),
    }


@router.post("/jira/subtasks")
async def create_subtask(
    request: CreateSubtaskRequest,
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    subtask, parent = await service.create_subtask(
        user,
        parent_task_key=request.parent_task_key,
        summary=request.summary,
        description=request.description,
        usability_percentage=request.usability_percentage,
        chat_id=request.chat_id,
        message_id=request.message_id,
        additional_details=request.additional_details,
        priority=request.priority,
        labels=request.labels,
        attachments=request.attachments,
    )
    return {
        "success": True,
        "subtaskKey": subtask.issue_key,
        "subtaskId": subtask.issue_id,
        "subtaskUrl": subtask.issue_url,
        "parentTaskKey": request.parent_task_key,
        "parentTaskSummary": parent.summary,
        "attachments": subtask.attachments,
    }


@router.patch("/jira/subtasks")
async def update_subtask(
    request: UpdateSubtaskRequest,
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    comment = await service.update_subtask(
        request.subtask_key,
        request.additional_feedback,
        usability_percentage=request.usability_percentage,
    )
    return {"success": True, "comment": comment.to_api()}


@router.get("/jira/issue-types")
async def issue_types(
    project_key: Optional[str] = Query(default=None, alias="projectKey"),
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    return {"success": True, **await service.get_issue_types(project_key)}


@router.post("/jira/lookup")
async def lookup(
    request: LookupRequest,
    user: User = Depends(get_current_user),
    service: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    """Fetch issues by key, or find the keys mentioned in PR text and fetch those."""
    result = await service.lookup(request.issue_key, request.issue_keys, request.extract_from)
    return {"success": True, **result}
