"""
Feedback service: votes on assistant messages and the user's feedback history.
"""

from __future__ import annotations

from typing import Any, Optional

from codeconnect.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, JiraCreationType, VoteType
from codeconnect.core.exceptions import FeedbackNotFoundError, ValidationError
from codeconnect.core.logging import get_logger
from codeconnect.core.security import generate_object_id
from codeconnect.domain.feedback import FeedbackFilters, FeedbackPage, JiraIssueRecord, Vote
from codeconnect.domain.user import User
from codeconnect.repositories.feedback_repo import FeedbackRepository

logger = get_logger(__name__)

# History filter names accepted by the feedback history endpoint
HISTORY_FILTERS: dict[str, dict[str, bool]] = {
    "all": {},
    "upvote": {"is_upvoted": True},
    "downvote": {"is_upvoted": False},
    "jira": {"has_jira_issue": True},
    "no-jira": {"has_jira_issue": False},
}

SORT_FIELDS = ("createdAt", "lastModifiedAt", "rating", "category")


def build_filters(filter_name: str = "all", category: Optional[str] = None) -> FeedbackFilters:
    """Translate query-string filter names into ``FeedbackFilters``."""
    if filter_name not in HISTORY_FILTERS:
        raise ValidationError(
            f"Unknown filter: {filter_name}",
            {"allowed": list(HISTORY_FILTERS)},
        )
    values: dict[str, Any] = dict(HISTORY_FILTERS[filter_name])
    if category and category != "all":
        values["category"] = category
    return FeedbackFilters(**values)


class FeedbackService:
    def __init__(self, feedbacks: FeedbackRepository) -> None:
        self.feedbacks = feedbacks

    async def vote(
        self,
        user: User,
        chat_id: str,
        message_id: str,
        vote_type: Optional[str],
        comments: str = "",
        rating: float = 0,
        jira_issue: Optional[JiraIssueRecord] = None,
        category: Optional[str] = None,
        jira_creation_type: Optional[JiraCreationType] = None,
    ) -> Vote:
        """
        Record a vote on an assistant message.

        A second vote on the same message updates the first one.

        Raises:
            ValidationError: If chat id, message id or vote type is missing,
                or the rating is outside 0-100
        """
        if not chat_id or not message_id or not vote_type:
            raise ValidationError("messageId and type are required")
        if vote_type not in (VoteType.UP.value, VoteType.DOWN.value):
            raise ValidationError(f"Invalid vote type: {vote_type}")
        if rating is not None and not 0 <= rating <= 100:
            raise ValidationError("rating must be between 0 and 100")

        vote = Vote(
            id=generate_object_id(),
            chat_id=chat_id,
            message_id=message_id,
            user_id=user.id,
            comments=comments or "",
            rating=rating or 0,
            is_upvoted=vote_type == VoteType.UP.value,
            has_jira_issue=jira_issue is not None,
            jira_issue=jira_issue,
            jira_creation_type=jira_creation_type,
            category=category or "general",
        )
        saved = await self.feedbacks.upsert_vote(vote)

        logger.info(
            "Vote saved",
            chat_id=chat_id,
            message_id=message_id,
            is_upvoted=saved.is_upvoted,
            has_jira_issue=saved.has_jira_issue,
        )
        return saved

    async def get_votes(self, chat_id: Optional[str] = None) -> list[Vote]:
        if chat_id:
            return await self.feedbacks.list_by_chat(chat_id)
        return await self.feedbacks.list_all()

    async def feedback_history(
        self,
        user: User,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        filters: Optional[FeedbackFilters] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> FeedbackPage:
        if page < 1:
            raise ValidationError("page must be at least 1")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(f"pageSize must be between 1 and {MAX_PAGE_SIZE}")
        if sort_by not in SORT_FIELDS:
            raise ValidationError(f"Unsupported sort field: {sort_by}")

        return await self.feedbacks.history_for_user(
            user.id,
            page=page,
            page_size=page_size,
            filters=filters,
            sort_field=sort_by,
            sort_direction=1 if sort_order == "asc" else -1,
        )

    async def update_jira_status(
        self,
        feedback_id: str,
        status: Optional[str],
        assignee: Optional[str] = None,
        priority: Optional[str] = None,
        labels: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """
        Update the Jira snapshot stored on a vote.

        Raises:
            ValidationError: If feedback id or status is missing
            FeedbackNotFoundError: If no vote with a Jira issue has this id
        """
        if not feedback_id or not status:
            raise ValidationError("feedbackId and status are required")

        updates: dict[str, Any] = {"status": status}
        if assignee is not None:
            updates["assignee"] = assignee
        if priority is not None:
            updates["priority"] = priority
        if labels is not None:
            updates["labels"] = labels

        if not await self.feedbacks.update_jira_issue(feedback_id, updates):
            raise FeedbackNotFoundError(feedback_id)

        logger.info("Feedback Jira status updated", feedback_id=feedback_id, status=status)
        return updates
