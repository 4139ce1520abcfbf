"""
Feedback (vote) domain models.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from codeconnect.core.constants import JiraCreationType
from codeconnect.domain.base import DocumentModel, utcnow


class JiraIssueRecord(DocumentModel):
    """Snapshot of the Jira issue raised from a vote."""

    issue_key: str
    issue_id: str = ""
    issue_url: str = ""
    summary: str = ""
    description: str = ""
    status: str = ""
    assignee: Optional[str] = None
    priority: str = ""
    labels: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)
    created_date: Optional[datetime] = None
    issue_type: Optional[str] = None
    parent_issue: Optional[str] = None
    usability_percentage: Optional[float] = None


class Vote(DocumentModel):
    """A user's vote and rating on an assistant message."""

    id: str
    chat_id: str
    message_id: str
    user_id: str
    comments: str = ""
    rating: float = 0
    is_upvoted: bool = False
    has_jira_issue: bool = False
    jira_issue: Optional[JiraIssueRecord] = None
    jira_creation_type: Optional[JiraCreationType] = None
    category: str = "general"
    created_at: datetime = Field(default_factory=utcnow)
    last_modified_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class FeedbackFilters(DocumentModel):
    is_upvoted: Optional[bool] = None
    has_jira_issue: Optional[bool] = None
    category: Optional[str] = None

    def matches(self, vote: Vote) -> bool:
        if self.is_upvoted is not None and vote.is_upvoted != self.is_upvoted:
            return False
        if self.has_jira_issue is not None and vote.has_jira_issue != self.has_jira_issue:
            return False
        if self.category is not None and vote.category != self.category:
            return False
        return True

    def to_query(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FeedbackPage(DocumentModel):
    """One page of a user's feedback history."""

    feedbacks: list[Vote]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, feedbacks: list[Vote], total_count: int, page: int, page_size: int) -> "FeedbackPage":
        total_pages = math.ceil(total_count / page_size) if page_size else 0
        return cls(
            feedbacks=feedbacks,
            total_count=total_count,
            total_pages=total_pages,
            current_page=page,
            page_size=page_size,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )
