"""
Vote and feedback history endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from codeconnect.api.deps import get_current_user, get_feedback_service
from codeconnect.core.constants import DEFAULT_PAGE_SIZE, JiraCreationType
from codeconnect.domain.base import DocumentModel
from codeconnect.domain.feedback import JiraIssueRecord
from codeconnect.domain.user import User
from codeconnect.services.feedback_service import FeedbackService, build_filters

router = APIRouter()


class VoteRequest(DocumentModel):
    """Vote on an assistant message, optionally with a Jira issue snapshot."""

    chat_id: str
    message_id: str
    type: Optional[str] = Field(default=None, description="'up' or 'down'")
    comments: str = ""
    rating: float = Field(default=0, ge=0, le=100)
    category: Optional[str] = None
    jira_issue: Optional[JiraIssueRecord] = None
    jira_creation_type: Optional[JiraCreationType] = None


class JiraStatusRequest(DocumentModel):
    feedback_id: str
    status: Optional[str] = None
    assignee: Optional[str] = None
    priority: Optional[str] = None
    labels: Optional[list[str]] = None


@router.get("/vote")
async def get_votes(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    user: User = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> dict[str, Any]:
    votes = await service.get_votes(chat_id)
    return {"votes": [vote.to_api() for vote in votes]}


@router.patch("/vote")
async def vote(
    request: VoteRequest,
    user: User = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> dict[str, Any]:
    saved = await service.vote(
        user,
        request.chat_id,
        request.message_id,
        request.type,
        comments=request.comments,
        rating=request.rating,
        jira_issue=request.jira_issue,
        category=request.category,
        jira_creation_type=request.jira_creation_type,
    )
    return {"success": True, "vote": saved.to_api()}


@router.get("/feedback/history")
async def feedback_history(
    page: int = Query(default=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, alias="pageSize"),
    filter_name: str = Query(default="all", alias="filter"),
    category: Optional[str] = Query(default=None),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
    user: User = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> dict[str, Any]:
    """
    The signed-in user's votes, paginated.

    ``filter`` is one of ``all``, ``upvote``, ``downvote``, ``jira`` or ``no-jira``.
    """
    result = await service.feedback_history(
        user,
        page=page,
        page_size=page_size,
        filters=build_filters(filter_name, category),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return result.to_api()


@router.patch("/feedback/jira-status")
async def update_jira_status(
    request: JiraStatusRequest,
    user: User = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> dict[str, Any]:
    updates = await service.update_jira_status(
        request.feedback_id,
        request.status,
        assignee=request.assignee,
        priority=request.priority,
        labels=request.labels,
    )
    return {"success": True, "updated": updates}
