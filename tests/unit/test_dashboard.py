"""
Unit tests for dashboard aggregations and endpoints.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import AsyncClient

from codeconnect.api.deps import container
from codeconnect.core.constants import NOT_RATED, RATING_COLOR_FLOOR, USERS_CSV_HEADER, MessageRole
from codeconnect.core.exceptions import DatabaseError, UserNotFoundError, ValidationError
from codeconnect.domain.chat import Chat, Message
from codeconnect.domain.feedback import Vote
from codeconnect.domain.user import User
from codeconnect.repositories import (
    InMemoryChatRepository,
    InMemoryFeedbackRepository,
    InMemoryMessageRepository,
    InMemoryUserRepository,
)
from codeconnect.services.dashboard_service import (
    DashboardService,
    category_display_name,
    chat_overview,
    export_users_csv,
    feedback_metrics,
    feedback_overview,
    model_performance,
    normalize_rating,
    rating_color,
    safe_date_string,
    safe_format_date,
    user_activity,
    user_analytics,
    user_growth,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_vote(id: str, rating: Any, **fields: Any) -> Vote:
    values = {"chat_id": "chat-1", "message_id": f"msg-{id}", "user_id": "u1", "created_at": NOW}
    values.update(fields)
    return Vote(id=id, rating=rating, **values)


def make_message(id: str, role: MessageRole, **fields: Any) -> Message:
    values = {"chat_id": "chat-1", "content": f"content {id}", "created_at": NOW}
    values.update(fields)
    return Message(id=id, role=role, **values)


class TestValueHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, 0),
            (True, 0),
            ("85%", 85),
            ("  42.6 points", 43),
            ("n/a", 0),
            (float("nan"), 0),
            (150, 100),
            (-5, 0),
            (72.5, 73),
        ],
    )
    def test_normalize_rating(self, value: Any, expected: int) -> None:
        assert normalize_rating(value) == expected

    def test_category_display_name(self) -> None:
        assert category_display_name("code-review") == "Code Review"
        assert category_display_name("general") == "General"
        assert category_display_name("ui-ux-design") == "Ui Ux-Design"

    def test_rating_color(self) -> None:
        assert rating_color(95) == "#22c55e"
        assert rating_color(60) == "#fde047"
        assert rating_color(5) == RATING_COLOR_FLOOR

    def test_dates(self) -> None:
        assert safe_format_date("not a date", now=NOW) == "2026-03-10T12:00:00.000Z"
        assert safe_format_date({"$date": "2026-01-02T03:04:05Z"}) == "2026-01-02T03:04:05.000Z"
        assert safe_date_string("2026-01-02T23:30:00-02:00") == "2026-01-03"
        assert safe_date_string(None) is None


class TestChatAndFeedbackOverview:
    def test_chat_overview_row(self) -> None:
        users = [User(id="u1", email="dana@example.com", name="Dana")]
        chats = [
            Chat(id="chat-1", user_id="u1", title="Triggers", last_modified_at=NOW),
            Chat(id="chat-2", user_id="ghost", title="Old", last_modified_at=NOW - timedelta(days=1)),
        ]
        messages = [
            make_message("m1", MessageRole.USER, created_at=NOW - timedelta(minutes=2)),
            make_message("m2", MessageRole.ASSISTANT, content="x" * 150, model="ibm/granite"),
        ]
        votes = [make_vote("v1", 80, message_id="m2", comments="Helpful")]

        rows = chat_overview(chats, messages, votes, users, now=NOW)

        assert [row["id"] for row in rows] == ["chat-1", "chat-2"]
        first = rows[0]
        assert first["userId"] == "Dana"
        assert first["lastMessage"] == "x" * 100 + "..."
        assert first["messagesCount"] == 2
        assert first["rating"] == 80
        assert first["feedback"] == "Helpful"
        assert [m["type"] for m in first["messages"]] == ["query", "response"]
        assert first["messages"][1]["feedback"]["isUpvoted"] is False
        assert first["messages"][0]["feedback"] is None
        assert rows[1]["userId"] == "Unknown"
        assert rows[1]["lastMessage"] == "Old"

    def test_feedback_overview_pairs_question_and_answer(self) -> None:
        chats = [Chat(id="chat-1", user_id="u1", title="Deploys")]
        messages = [
            make_message("q1", MessageRole.USER, content="How to deploy?", created_at=NOW - timedelta(minutes=5)),
            make_message("a1", MessageRole.ASSISTANT, content="Use sfdx.", model="ibm/granite"),
        ]
        votes = [
            make_vote("v1", "90", message_id="a1", is_upvoted=True, category="deployment"),
            make_vote("v2", 0, message_id="unknown", category=""),
            make_vote("v3", 10, chat_id="gone", message_id="nothing"),
        ]

        rows = feedback_overview(votes, messages, chats, [], now=NOW)

        assert rows[0]["query"] == "How to deploy?"
        assert rows[0]["response"] == "Use sfdx."
        assert rows[0]["model"] == "ibm/granite"
        assert rows[0]["rating"] == 90
        assert rows[0]["resolved"] is True
        # unknown message id falls back to the chat's latest answer
        assert rows[1]["response"] == "Use sfdx."
        assert rows[1]["category"] == "Deploys"
        assert rows[2]["query"] == "N/A"
        assert rows[2]["response"] == "AI response not found"
        assert rows[2]["model"] == "Unknown"
        assert rows[2]["category"] == "general"


class TestFeedbackMetrics:
    def test_distribution_and_categories(self) -> None:
        votes = [
            make_vote("v1", 0),
            make_vote("v2", 3),
            make_vote("v3", 85, category="code-review"),
            make_vote("v4", 100, category="code-review"),
        ]
        metrics = feedback_metrics(votes, [], now=NOW)

        distribution = {row["rating"]: row["count"] for row in metrics["ratingDistribution"]}
        assert len(metrics["ratingDistribution"]) == 21
        assert distribution[NOT_RATED] == 2
        assert distribution["85%"] == 1
        assert distribution["100%"] == 1

        breakdown = {row["category"]: row for row in metrics["categoryBreakdown"]}
        assert breakdown["Code Review"]["count"] == 2
        assert breakdown["Code Review"]["avgRating"] == 92.5
        assert breakdown["General"]["avgRating"] == 3.0

    def test_trends_cover_seven_days(self) -> None:
        votes = [make_vote("v1", 0), make_vote("v2", 70, created_at=NOW - timedelta(days=2))]
        trends = feedback_metrics(votes, [], now=NOW)["ratingTrends"]

        assert len(trends) == 7
        assert trends[-1] == {"date": "3/10", "rating": NOT_RATED, "count": 1}
        assert trends[-3] == {"date": "3/8", "rating": 70.0, "count": 1}
        assert trends[0]["count"] == 0

    def test_time_windows(self) -> None:
        votes = [
            make_vote("v1", 80, created_at=NOW - timedelta(minutes=30)),
            make_vote("v2", 40, created_at=NOW - timedelta(days=3)),
            make_vote("v3", 10, created_at=NOW - timedelta(days=60)),
        ]
        windows = feedback_metrics(votes, [], now=NOW)["timeBasedMetrics"]

        assert windows["lastHour"] == {"count": 1, "avgRating": 80.0}
        assert windows["last24Hours"]["count"] == 1
        assert windows["lastWeek"] == {"count": 2, "avgRating": 60.0}
        assert windows["lastMonth"]["count"] == 2


def test_model_performance() -> None:
    messages = [
        make_message("a1", MessageRole.ASSISTANT, model="ibm/granite", created_at=NOW - timedelta(days=1)),
        make_message("a2", MessageRole.ASSISTANT, model="ibm/granite"),
        make_message("b1", MessageRole.ASSISTANT, model="meta/llama"),
        make_message("q1", MessageRole.USER),
        make_message("old", MessageRole.ASSISTANT, model="meta/llama", created_at=NOW - timedelta(days=45)),
    ]
    votes = [make_vote("v1", 80, message_id="a1"), make_vote("v2", 40, message_id="b1")]

    result = model_performance(messages, votes, now=NOW)

    assert result["allModels"] == ["ibm/granite", "meta/llama"]
    assert result["modelUsage"][0] == {"model": "ibm/granite", "count": 2, "percentage": 50.0}
    ratings = {row["model"]: row for row in result["modelRatingAvg"]}
    assert ratings["ibm/granite"]["avgRating"] == 80.0
    assert ratings["ibm/granite"]["feedbackRate"] == 50.0
    assert result["modelRatingAvg"][0]["model"] == "ibm/granite"
    assert [row["satisfactionRate"] for row in result["modelSatisfaction"]] == [100.0, 0.0]
    assert result["modelTrends"] == [
        {"date": "2026-03-09", "ibm/granite": 1, "meta/llama": 0},
        {"date": "2026-03-10", "ibm/granite": 1, "meta/llama": 1},
    ]


class TestUserAnalytics:
    def setup_method(self) -> None:
        self.active = User(id="u1", email="dana@example.com", name="Dana", last_login=NOW - timedelta(days=1))
        self.idle = User(id="u2", email="sam@example.com", name=None, created_at=NOW - timedelta(days=90))
        self.chats = [Chat(id="chat-1", user_id="u1")]
        self.messages = [make_message(str(i), MessageRole.USER) for i in range(3)]
        self.votes = [make_vote("v1", 4)]
        self.app_feedbacks = [{"userId": "dana@example.com"}, {"userId": "u1"}]

    def test_scores_and_order(self) -> None:
        rows = user_analytics(
            [self.idle, self.active], self.chats, self.messages, self.votes, self.app_feedbacks, now=NOW
        )

        assert [row["_id"] for row in rows] == ["u1", "u2"]
        dana = rows[0]
        assert dana["totalChats"] == 1
        assert dana["totalMessages"] == 3
        assert dana["totalFeedbacks"] == 1
        assert dana["totalApplicationFeedbacks"] == 2
        assert dana["averageRating"] == 80
        assert dana["isActive"] is True
        assert dana["activityScore"] == 10 + 6 + 5 + 6 + 20

        sam = rows[1]
        assert sam["name"] == "Unknown"
        assert sam["lastLogin"] is None
        assert sam["activityScore"] == 0

    def test_csv_export(self) -> None:
        rows = user_analytics([self.idle], [], [], [], [], now=NOW)
        lines = export_users_csv(rows).split("\n")

        assert lines[0] == ",".join(USERS_CSV_HEADER)
        assert lines[1].startswith("u2,Unknown,sam@example.com,Never,")
        assert lines[1].endswith(",user,No,0")
        assert len(lines) == 2


def test_user_growth_running_total() -> None:
    users = [
        User(id="u1", email="a@example.com", created_at=NOW),
        User(id="u2", email="b@example.com", created_at=NOW - timedelta(days=3)),
        User(id="u3", email="c@example.com", created_at=NOW - timedelta(days=40)),
    ]
    rows = user_growth(users, total=5, now=NOW)

    assert len(rows) == 30
    assert rows[0]["totalUsers"] == 3
    assert rows[-1] == {"date": "2026-03-10", "newUsers": 1, "totalUsers": 5}
    assert rows[-4]["newUsers"] == 1


def test_user_activity_counts_chat_owners() -> None:
    chats = [
        Chat(id="chat-1", user_id="u1", created_at=NOW - timedelta(days=2)),
        Chat(id="chat-2", user_id="u2", created_at=NOW),
    ]
    messages = [
        make_message("m1", MessageRole.USER, chat_id="chat-1"),
        make_message("m2", MessageRole.ASSISTANT, chat_id="chat-2"),
    ]
    rows = user_activity(chats, messages, now=NOW)

    assert len(rows) == 30
    assert rows[-1] == {"date": "2026-03-10", "activeUsers": 2, "totalChats": 1, "totalMessages": 2}
    assert rows[-3]["activeUsers"] == 1


class TestDashboardService:
    @pytest.fixture
    def repos(self) -> dict[str, Any]:
        messages = InMemoryMessageRepository()
        feedbacks = InMemoryFeedbackRepository()
        return {
            "users": InMemoryUserRepository(),
            "chats": InMemoryChatRepository(messages, feedbacks),
            "messages": messages,
            "feedbacks": feedbacks,
        }

    @pytest.mark.asyncio
    async def test_update_user_role(self, repos: dict[str, Any]) -> None:
        service = DashboardService(**repos, clock=lambda: NOW)
        user = await repos["users"].get_or_create("dana@example.com", "Dana")

        result = await service.update_user_role(user.id, "ADMIN")

        assert result["message"] == "User role updated to admin"
        assert result["user"]["role"] == "admin"
        assert (await repos["users"].get(user.id)).is_admin

    @pytest.mark.asyncio
    async def test_update_user_role_validation(self, repos: dict[str, Any]) -> None:
        service = DashboardService(**repos)

        with pytest.raises(ValidationError, match="required"):
            await service.update_user_role("", "admin")
        with pytest.raises(ValidationError, match="Invalid user ID format"):
            await service.update_user_role("not-an-id", "admin")
        with pytest.raises(ValidationError, match="Invalid role"):
            await service.update_user_role("a" * 24, "owner")
        with pytest.raises(UserNotFoundError):
            await service.update_user_role("a" * 24, "user")

    @pytest.mark.asyncio
    async def test_storage_failure_becomes_database_error(self, repos: dict[str, Any]) -> None:
        class BrokenChats:
            async def list_all(self) -> list[Chat]:
                raise RuntimeError("connection reset")

        repos["chats"] = BrokenChats()
        service = DashboardService(**repos)

        with pytest.raises(DatabaseError) as exc_info:
            await service.chat_overview()
        assert exc_info.value.details["error"] == "connection reset"

    @pytest.mark.asyncio
    async def test_messages_count(self, repos: dict[str, Any]) -> None:
        await repos["messages"].save_many(
            [make_message("q", MessageRole.USER), make_message("a", MessageRole.ASSISTANT)]
        )
        result = await DashboardService(**repos).messages_count()

        assert result["totalMessages"] == 1
        assert result["totalAllMessages"] == 2
        assert {"_id": "user", "count": 1} in result["roleStats"]


# =============================================================================
# Endpoints
# =============================================================================


@pytest.mark.asyncio
async def test_dashboard_requires_admin(async_client: AsyncClient, user_headers: dict[str, str]) -> None:
    response = await async_client.get("/api/v1/dashboard/metrics", headers=user_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTHORIZATION_FAILED"


@pytest.mark.asyncio
async def test_dashboard_requires_user(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/dashboard/chats")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_dashboard_endpoints_for_admin(
    async_client: AsyncClient,
    admin_headers: dict[str, str],
    user_headers: dict[str, str],
    sample_chat_id: str,
) -> None:
    await async_client.post(
        "/api/v1/chat/query/stream",
        json={"chatId": sample_chat_id, "query": "Explain governor limits"},
        headers=user_headers,
    )

    chats = (await async_client.get("/api/v1/dashboard/chats", headers=admin_headers)).json()
    assert chats[0]["threadId"] == sample_chat_id
    assert chats[0]["userId"] == "Dana Dev"
    assert chats[0]["messagesCount"] == 2

    metrics = (await async_client.get("/api/v1/dashboard/metrics", headers=admin_headers)).json()
    assert set(metrics) == {"ratingDistribution", "ratingTrends", "categoryBreakdown", "timeBasedMetrics"}

    counts = (await async_client.get("/api/v1/dashboard/messages-count", headers=admin_headers)).json()
    assert counts["totalMessages"] == 1
    assert counts["totalAllMessages"] == 2

    performance = (await async_client.get("/api/v1/dashboard/model-performance", headers=admin_headers)).json()
    assert performance["modelUsage"][0]["count"] == 1

    growth = (await async_client.get("/api/v1/dashboard/users?action=growth", headers=admin_headers)).json()
    assert len(growth["data"]) == 30
    assert growth["data"][-1]["totalUsers"] == 2


@pytest.mark.asyncio
async def test_user_export_csv(async_client: AsyncClient, admin_headers: dict[str, str]) -> None:
    response = await async_client.get(
        "/api/v1/dashboard/users", params={"action": "export", "format": "csv"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="user-analytics-' in response.headers["content-disposition"]
    assert response.text.split("\n")[0] == ",".join(USERS_CSV_HEADER)

    bad = await async_client.get(
        "/api/v1/dashboard/users", params={"action": "export", "format": "xlsx"}, headers=admin_headers
    )
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_role_update_endpoint(
    async_client: AsyncClient, admin_headers: dict[str, str], user_headers: dict[str, str]
) -> None:
    user = await container.users.get_or_create(user_headers["X-User-Email"], "Dana Dev")

    response = await async_client.patch(
        f"/api/v1/dashboard/users/{user.id}/role", json={"role": "admin"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"

    missing = await async_client.patch(
        f"/api/v1/dashboard/users/{'b' * 24}/role", json={"role": "user"}, headers=admin_headers
    )
    assert missing.status_code == 404
