"""
Unit tests for votes and feedback history.
"""

import pytest
from httpx import AsyncClient

from codeconnect.core.exceptions import FeedbackNotFoundError, ValidationError
from codeconnect.domain.feedback import JiraIssueRecord
from codeconnect.domain.user import User
from codeconnect.repositories import InMemoryFeedbackRepository
from codeconnect.services.feedback_service import FeedbackService, build_filters

USER = User(id="a" * 24, email="dana@example.com", name="Dana Dev")
OTHER = User(id="b" * 24, email="sam@example.com", name="Sam Reviewer")


@pytest.fixture
def service() -> FeedbackService:
    return FeedbackService(InMemoryFeedbackRepository())


def jira_record(key: str = "ISCCC-7") -> JiraIssueRecord:
    return JiraIssueRecord(issue_key=key, issue_id="10007", status="Open", priority="Medium")


@pytest.mark.asyncio
async def test_vote_validation(service: FeedbackService) -> None:
    with pytest.raises(ValidationError):
        await service.vote(USER, "chat-1", "", "up")
    with pytest.raises(ValidationError):
        await service.vote(USER, "chat-1", "msg-1", None)
    with pytest.raises(ValidationError):
        await service.vote(USER, "chat-1", "msg-1", "sideways")


@pytest.mark.asyncio
async def test_second_vote_updates_first(service: FeedbackService) -> None:
    first = await service.vote(USER, "chat-1", "msg-1", "up", comments="Great", rating=90)
    second = await service.vote(
        USER,
        "chat-1",
        "msg-1",
        "down",
        comments="Actually wrong",
        rating=20,
        jira_issue=jira_record(),
        category="accuracy",
    )

    votes = await service.get_votes("chat-1")
    assert len(votes) == 1
    assert second.id == first.id
    assert votes[0].is_upvoted is False
    assert votes[0].comments == "Actually wrong"
    assert votes[0].has_jira_issue is True
    assert votes[0].jira_issue.issue_key == "ISCCC-7"
    assert votes[0].category == "accuracy"


@pytest.mark.asyncio
async def test_get_votes_by_chat(service: FeedbackService) -> None:
    await service.vote(USER, "chat-1", "msg-1", "up")
    await service.vote(USER, "chat-2", "msg-2", "down")

    assert [v.message_id for v in await service.get_votes("chat-2")] == ["msg-2"]
    assert len(await service.get_votes()) == 2


def test_build_filters() -> None:
    assert build_filters().to_query() == {}
    assert build_filters("upvote").to_query() == {"isUpvoted": True}
    assert build_filters("no-jira", category="performance").to_query() == {
        "hasJiraIssue": False,
        "category": "performance",
    }
    assert build_filters("all", category="all").to_query() == {}
    with pytest.raises(ValidationError):
        build_filters("starred")


@pytest.mark.asyncio
async def test_feedback_history_pagination_and_filters(service: FeedbackService) -> None:
    for i in range(5):
        await service.vote(USER, "chat-1", f"msg-{i}", "up" if i % 2 == 0 else "down", rating=i * 10)
    await service.vote(OTHER, "chat-9", "msg-other", "up")

    page = await service.feedback_history(USER, page=2, page_size=2, sort_by="rating", sort_order="asc")
    assert [v.rating for v in page.feedbacks] == [20, 30]
    assert page.total_count == 5
    assert page.total_pages == 3
    assert page.has_next_page is True
    assert page.has_previous_page is True

    downvotes = await service.feedback_history(USER, filters=build_filters("downvote"))
    assert sorted(v.message_id for v in downvotes.feedbacks) == ["msg-1", "msg-3"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [{"page": 0}, {"page_size": 0}, {"page_size": 101}, {"sort_by": "userId"}],
)
async def test_feedback_history_rejects_bad_paging(service: FeedbackService, kwargs: dict) -> None:
    with pytest.raises(ValidationError):
        await service.feedback_history(USER, **kwargs)


@pytest.mark.asyncio
async def test_update_jira_status(service: FeedbackService) -> None:
    plain = await service.vote(USER, "chat-1", "msg-1", "up")
    with_issue = await service.vote(USER, "chat-1", "msg-2", "down", jira_issue=jira_record())

    updates = await service.update_jira_status(with_issue.id, "Done", assignee="sam", labels=["triaged"])
    assert updates == {"status": "Done", "assignee": "sam", "labels": ["triaged"]}

    vote = (await service.get_votes("chat-1"))[1]
    assert vote.jira_issue.status == "Done"
    assert vote.jira_issue.labels == ["triaged"]
    assert vote.jira_issue.priority == "Medium"
    assert vote.updated_at is not None

    with pytest.raises(FeedbackNotFoundError):
        await service.update_jira_status(plain.id, "Done")
    with pytest.raises(ValidationError):
        await service.update_jira_status(with_issue.id, "")


# =============================================================================
# API
# =============================================================================


@pytest.mark.asyncio
async def test_vote_endpoints(async_client: AsyncClient, user_headers: dict[str, str]) -> None:
    response = await async_client.patch(
        "/api/v1/vote",
        json={"chatId": "chat-1", "messageId": "msg-1", "type": "up", "rating": 80, "category": "accuracy"},
        headers=user_headers,
    )
    assert response.status_code == 200
    vote = response.json()["vote"]
    assert vote["isUpvoted"] is True
    assert vote["category"] == "accuracy"

    listed = await async_client.get("/api/v1/vote", params={"chatId": "chat-1"}, headers=user_headers)
    assert [v["messageId"] for v in listed.json()["votes"]] == ["msg-1"]

    missing_type = await async_client.patch(
        "/api/v1/vote", json={"chatId": "chat-1", "messageId": "msg-1"}, headers=user_headers
    )
    assert missing_type.status_code == 400
    assert missing_type.json()["error"]["message"] == "messageId and type are required"


@pytest.mark.asyncio
async def test_feedback_history_endpoint(async_client: AsyncClient, user_headers: dict[str, str]) -> None:
    for i in range(3):
        await async_client.patch(
            "/api/v1/vote",
            json={"chatId": "chat-1", "messageId": f"msg-{i}", "type": "down"},
            headers=user_headers,
        )

    response = await async_client.get(
        "/api/v1/feedback/history",
        params={"page": 1, "pageSize": 2, "filter": "downvote"},
        headers=user_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["totalCount"] == 3
    assert data["totalPages"] == 2
    assert len(data["feedbacks"]) == 2
    assert data["hasNextPage"] is True

    invalid = await async_client.get(
        "/api/v1/feedback/history", params={"filter": "starred"}, headers=user_headers
    )
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_jira_status_endpoint(async_client: AsyncClient, user_headers: dict[str, str]) -> None:
    created = await async_client.patch(
        "/api/v1/vote",
        json={
            "chatId": "chat-1",
            "messageId": "msg-1",
            "type": "down",
            "jiraIssue": {"issueKey": "ISCCC-7", "status": "Open"},
            "jiraCreationType": "issue",
        },
        headers=user_headers,
    )
    feedback_id = created.json()["vote"]["id"]

    updated = await async_client.patch(
        "/api/v1/feedback/jira-status",
        json={"feedbackId": feedback_id, "status": "In Progress"},
        headers=user_headers,
    )
    assert updated.json() == {"success": True, "updated": {"status": "In Progress"}}

    missing = await async_client.patch(
        "/api/v1/feedback/jira-status",
        json={"feedbackId": "0" * 24, "status": "Done"},
        headers=user_headers,
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [-20, 100.5, 500])
async def test_vote_rejects_rating_out_of_range(service: FeedbackService, rating: float) -> None:
    with pytest.raises(ValidationError):
        await service.vote(USER, "chat-1", "msg-1", "up", rating=rating)
    assert await service.get_votes() == []


@pytest.mark.asyncio
async def test_vote_accepts_rating_bounds(service: FeedbackService) -> None:
    low = await service.vote(USER, "chat-1", "msg-1", "down", rating=0)
    high = await service.vote(USER, "chat-1", "msg-2", "up", rating=100)
    assert (low.rating, high.rating) == (0, 100)


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [-20, 500])
async def test_vote_endpoint_rejects_rating_out_of_range(
    async_client: AsyncClient, user_headers: dict[str, str], rating: float
) -> None:
    response = await async_client.patch(
        "/api/v1/vote",
        json={"chatId": "chat-1", "messageId": "msg-1", "type": "up", "rating": rating},
        headers=user_headers,
    )
    assert response.status_code == 422

    listed = await async_client.get("/api/v1/vote", params={"chatId": "chat-1"}, headers=user_headers)
    assert listed.json()["votes"] == []
