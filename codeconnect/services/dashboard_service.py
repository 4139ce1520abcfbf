"""
Dashboard aggregation.

The aggregation functions are pure: they take lists of domain models and a
reference time and return JSON-ready dictionaries in the shapes the admin
dashboard renders. ``DashboardService`` loads the collections through the
repositories and feeds them in.
"""

from __future__ import annotations

import csv
import io
import math
import re
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from codeconnect.core.constants import (
    ACTIVE_USER_DAYS,
    NOT_RATED,
    NOT_RATED_COLOR,
    POSITIVE_RATING_THRESHOLD,
    RATING_COLOR_FLOOR,
    RATING_COLORS,
    TOP_CATEGORIES,
    USERS_CSV_HEADER,
    MessageRole,
    UserRole,
)
from codeconnect.core.exceptions import (
    CodeConnectError,
    DatabaseError,
    UserNotFoundError,
    ValidationError,
)
from codeconnect.core.logging import get_logger
from codeconnect.core.security import is_valid_object_id
from codeconnect.domain.base import ensure_aware, utcnow
from codeconnect.domain.chat import Chat, Message
from codeconnect.domain.feedback import Vote
from codeconnect.domain.user import User
from codeconnect.repositories.chat_repo import ChatRepository, MessageRepository
from codeconnect.repositories.feedback_repo import FeedbackRepository
from codeconnect.repositories.user_repo import UserRepository

logger = get_logger(__name__)

T = TypeVar("T")

_NUMBER_PREFIX_RE = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")

TIME_WINDOWS = (
    ("lastHour", timedelta(hours=1)),
    ("last24Hours", timedelta(days=1)),
    ("lastWeek", timedelta(days=7)),
    ("lastMonth", timedelta(days=30)),
)


# =============================================================================
# Value helpers
# =============================================================================


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _one_decimal(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def normalize_rating(value: Any) -> int:
    """
    Coerce a stored rating to an integer percentage in [0, 100].

    Missing or unparseable values count as 0. Strings are parsed by their
    leading number, so ``"85%"`` is 85.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        match = _NUMBER_PREFIX_RE.match(value)
        if not match:
            return 0
        value = float(match.group(0))
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return 100 if number > 0 else 0
    return max(0, min(100, _round_half_up(number)))


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse a datetime, ISO string or ``{"$date": ...}`` value; None when invalid."""
    if isinstance(value, dict) and "$date" in value:
        value = value["$date"]
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str) and value:
        try:
            return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def _iso(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def safe_format_date(value: Any, now: Optional[datetime] = None) -> str:
    """ISO-8601 string for ``value``; missing or invalid dates become ``now``."""
    parsed = to_datetime(value)
    return _iso(parsed or now or utcnow())


def safe_date_string(value: Any) -> Optional[str]:
    """``YYYY-MM-DD`` (UTC) for ``value``, or None when it is not a valid date."""
    parsed = to_datetime(value)
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).date().isoformat()


def rating_color(rating: float) -> str:
    rating = min(max(rating, 0), 100)
    for lower_bound, color in RATING_COLORS:
        if rating >= lower_bound:
            return color
    return RATING_COLOR_FLOOR


def category_display_name(category: str) -> str:
    """``code-review`` -> ``Code Review``: first dash to a space, words capitalized."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), category.replace("-", " ", 1))


def _user_label(user: Optional[User]) -> str:
    if user is None:
        return "Unknown"
    return user.name or user.email or "Unknown"


def _truncate(text: str, limit: int = 100) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _vote_time(vote: Vote) -> datetime:
    return ensure_aware(vote.last_modified_at or vote.created_at)


def _last_days(now: datetime, days: int) -> list[datetime]:
    """Midnight (UTC) of each of the last ``days`` days, oldest first."""
    today = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return [today - timedelta(days=i) for i in range(days - 1, -1, -1)]


# =============================================================================
# Chats and feedback
# =============================================================================


def _feedback_summary(vote: Vote) -> dict[str, Any]:
    return {
        "rating": vote.rating or 0,
        "category": vote.category or "general",
        "isUpvoted": vote.is_upvoted,
        "comments": vote.comments or "",
        "hasJiraIssue": vote.has_jira_issue,
    }


def chat_overview(
    chats: Iterable[Chat],
    messages: Iterable[Message],
    feedbacks: Iterable[Vote],
    users: Iterable[User],
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """One row per chat, most recently modified first."""
    users_by_id = {u.id: u for u in users}

    messages_by_chat: dict[str, list[Message]] = defaultdict(list)
    for message in messages:
        messages_by_chat[message.chat_id].append(message)

    feedbacks_by_chat: dict[str, list[Vote]] = defaultdict(list)
    for vote in feedbacks:
        feedbacks_by_chat[vote.chat_id].append(vote)

    rows = []
    ordered = sorted(chats, key=lambda c: ensure_aware(c.last_modified_at), reverse=True)
    for chat in ordered:
        chat_messages = sorted(messages_by_chat[chat.id], key=lambda m: ensure_aware(m.created_at))
        chat_feedbacks = feedbacks_by_chat[chat.id]
        by_message = {v.message_id: v for v in chat_feedbacks}

        rated = [normalize_rating(v.rating) for v in chat_feedbacks if v.rating and v.rating > 0]
        latest = max(chat_feedbacks, key=_vote_time, default=None)

        last_message = chat_messages[-1].content if chat_messages else (chat.title or "")
        rows.append(
            {
                "id": chat.id,
                "userId": _user_label(users_by_id.get(chat.user_id)),
                "threadId": chat.id,
                "lastMessage": _truncate(last_message or ""),
                "messagesCount": len(chat_messages),
                "rating": _round_half_up(_mean(rated)) if rated else 0,
                "feedbackCount": len(rated),
                "feedback": latest.comments if latest else "",
                "timestamp": safe_format_date(chat.last_modified_at or chat.created_at, now),
                "messages": [
                    {
                        "id": m.id,
                        "type": "query" if m.role == MessageRole.USER.value else "response",
                        "role": m.role,
                        "content": m.content,
                        "timestamp": safe_format_date(m.created_at, now),
                        "feedback": _feedback_summary(by_message[m.id]) if m.id in by_message else None,
                        "model": m.model or None,
                    }
                    for m in chat_messages
                ],
            }
        )
    return rows


def feedback_overview(
    feedbacks: Iterable[Vote],
    messages: Iterable[Message],
    chats: Iterable[Chat],
    users: Iterable[User],
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """
    One row per vote with the rated answer and the question that led to it.

    The answer is the message the vote points at, or the chat's latest
    assistant message when that id is unknown. The question is the latest
    user message created before the answer.
    """
    messages = list(messages)
    messages_by_id = {m.id: m for m in messages}
    messages_by_chat: dict[str, list[Message]] = defaultdict(list)
    for message in messages:
        messages_by_chat[message.chat_id].append(message)
    chats_by_id = {c.id: c for c in chats}
    users_by_id = {u.id: u for u in users}

    rows = []
    for vote in feedbacks:
        chat_messages = messages_by_chat.get(vote.chat_id, [])
        answer = messages_by_id.get(vote.message_id)
        if answer is None:
            answer = max(
                (m for m in chat_messages if m.role == MessageRole.ASSISTANT.value),
                key=lambda m: ensure_aware(m.created_at),
                default=None,
            )

        question = None
        if answer is not None:
            answered_at = ensure_aware(answer.created_at)
            question = max(
                (
                    m
                    for m in chat_messages
                    if m.role == MessageRole.USER.value and ensure_aware(m.created_at) < answered_at
                ),
                key=lambda m: ensure_aware(m.created_at),
                default=None,
            )

        chat = chats_by_id.get(vote.chat_id)
        owner = users_by_id.get(chat.user_id) if chat else None
        rows.append(
            {
                "id": vote.id,
                "userId": _user_label(owner),
                "threadId": vote.chat_id,
                "rating": normalize_rating(vote.rating),
                "feedback": vote.comments or "",
                "timestamp": safe_format_date(vote.created_at, now),
                "query": question.content if question and question.content else "N/A",
                "response": answer.content if answer and answer.content else "AI response not found",
                "model": (answer.model if answer else None) or "Unknown",
                "category": vote.category or (chat.title if chat else None) or "General",
                "resolved": bool(vote.is_upvoted),
            }
        )
    return rows


def _bucket_average(ratings: list[int]) -> Any:
    return _one_decimal(_mean(ratings)) if ratings else NOT_RATED


def time_based_metrics(feedbacks: Iterable[Vote], now: datetime) -> dict[str, dict[str, Any]]:
    """Count and average rating (unrated included) per trailing window."""
    windows: dict[str, list[int]] = {name: [] for name, _ in TIME_WINDOWS}
    for vote in feedbacks:
        created_at = to_datetime(vote.created_at)
        if created_at is None:
            continue
        elapsed = now - created_at
        rating = normalize_rating(vote.rating)
        for name, span in TIME_WINDOWS:
            if elapsed <= span:
                windows[name].append(rating)

    return {
        name: {
            "count": len(ratings),
            "avgRating": _one_decimal(_mean(ratings)) if ratings else 0,
        }
        for name, ratings in windows.items()
    }


def feedback_metrics(
    feedbacks: Iterable[Vote],
    chats: Iterable[Chat],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Rating distribution, top categories, 7-day trend and time windows."""
    now = now or utcnow()
    feedbacks = list(feedbacks)
    chat_titles = {c.id: c.title or "Unknown" for c in chats}

    buckets: Counter = Counter()
    categories: dict[str, dict[str, Any]] = {}
    by_day: dict[str, dict[str, Any]] = {}

    for vote in feedbacks:
        rating = normalize_rating(vote.rating)
        buckets[(rating // 5) * 5] += 1

        category = category_display_name(
            vote.category or chat_titles.get(vote.chat_id) or "general"
        )
        entry = categories.setdefault(category, {"count": 0, "rated": []})
        entry["count"] += 1
        if rating > 0:
            entry["rated"].append(rating)

        day = safe_date_string(vote.created_at)
        if day:
            day_entry = by_day.setdefault(day, {"count": 0, "rated": []})
            day_entry["count"] += 1
            if rating > 0:
                day_entry["rated"].append(rating)

    distribution = [{"rating": NOT_RATED, "count": buckets[0], "color": NOT_RATED_COLOR}]
    distribution.extend(
        {"rating": f"{bucket}%", "count": buckets[bucket], "color": rating_color(bucket)}
        for bucket in range(5, 101, 5)
    )

    breakdown = sorted(
        (
            {"category": name, "count": data["count"], "avgRating": _bucket_average(data["rated"])}
            for name, data in categories.items()
        ),
        key=lambda row: row["count"],
        reverse=True,
    )[:TOP_CATEGORIES]

    trends = []
    for day in _last_days(now, 7):
        data = by_day.get(day.date().isoformat(), {"count": 0, "rated": []})
        trends.append(
            {
                "date": f"{day.month}/{day.day}",
                "rating": _bucket_average(data["rated"]),
                "count": data["count"],
            }
        )

    return {
        "ratingDistribution": distribution,
        "ratingTrends": trends,
        "categoryBreakdown": breakdown,
        "timeBasedMetrics": time_based_metrics(feedbacks, now),
    }


# =============================================================================
# Models
# =============================================================================


def model_performance(
    messages: Iterable[Message],
    feedbacks: Iterable[Vote],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Usage, ratings, daily trend and satisfaction per model."""
    now = now or utcnow()
    answers = [
        m for m in messages if m.role == MessageRole.ASSISTANT.value and m.model
    ]
    votes_by_message = {v.message_id: v for v in feedbacks}

    usage: Counter = Counter()
    ratings: dict[str, list[int]] = defaultdict(list)
    for message in answers:
        usage[message.model] += 1
        vote = votes_by_message.get(message.id)
        if vote is not None and vote.rating and vote.rating > 0:
            ratings[message.model].append(normalize_rating(vote.rating))

    total = len(answers)
    all_models = sorted(usage)

    model_usage = sorted(
        (
            {"model": model, "count": count, "percentage": _one_decimal(count / total * 100)}
            for model, count in usage.items()
        ),
        key=lambda row: row["count"],
        reverse=True,
    )

    rating_avg = sorted(
        (
            {
                "model": model,
                "avgRating": _one_decimal(_mean(ratings[model])) if ratings[model] else 0,
                "feedbackCount": len(ratings[model]),
                "totalMessages": count,
                "feedbackRate": _one_decimal(len(ratings[model]) / count * 100),
            }
            for model, count in usage.items()
        ),
        key=lambda row: row["avgRating"],
        reverse=True,
    )

    cutoff = now - timedelta(days=30)
    daily: dict[str, Counter] = defaultdict(Counter)
    for message in answers:
        created_at = to_datetime(message.created_at)
        if created_at is not None and created_at >= cutoff:
            daily[created_at.astimezone(timezone.utc).date().isoformat()][message.model] += 1
    trends = [
        {"date": day, **{model: daily[day][model] for model in all_models}}
        for day in sorted(daily)
    ]

    satisfaction = []
    for model, values in ratings.items():
        positive = sum(1 for r in values if r > POSITIVE_RATING_THRESHOLD)
        satisfaction.append(
            {
                "model": model,
                "avgRating": _one_decimal(_mean(values)),
                "positiveCount": positive,
                "negativeCount": len(values) - positive,
                "totalFeedback": len(values),
                "satisfactionRate": _one_decimal(positive / len(values) * 100),
            }
        )
    satisfaction.sort(key=lambda row: row["satisfactionRate"], reverse=True)

    return {
        "modelUsage": model_usage,
        "modelRatingAvg": rating_avg,
        "modelTrends": trends,
        "modelSatisfaction": satisfaction,
        "allModels": all_models,
    }


def messages_count(assistant: int, total: int, by_role: dict[str, int]) -> dict[str, Any]:
    return {
        "totalMessages": assistant,
        "totalAllMessages": total,
        "roleStats": [{"_id": role, "count": count} for role, count in by_role.items()],
        "success": True,
    }


# =============================================================================
# Users
# =============================================================================


def _percent_rating(rating: Optional[float]) -> float:
    """Ratings up to 5 are on the 1-5 star scale."""
    rating = rating or 0
    return rating * 100 / 5 if rating <= 5 else rating


def activity_score(chats: int, messages: int, feedbacks: int, app_feedbacks: int, active: bool) -> int:
    return min(100, chats * 10 + messages * 2 + feedbacks * 5 + app_feedbacks * 3 + (20 if active else 0))


def user_analytics(
    users: Iterable[User],
    chats: Iterable[Chat],
    messages: Iterable[Message],
    feedbacks: Iterable[Vote],
    app_feedbacks: Iterable[dict[str, Any]],
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """Per-user activity, most active first."""
    now = now or utcnow()
    chats = list(chats)
    message_counts = Counter(m.chat_id for m in messages)
    feedbacks_by_chat: dict[str, list[Vote]] = defaultdict(list)
    for vote in feedbacks:
        feedbacks_by_chat[vote.chat_id].append(vote)
    app_counts = Counter(str(doc.get("userId")) for doc in app_feedbacks)

    rows = []
    for user in users:
        owned = {c.id for c in chats if c.user_id in (user.id, user.email)}
        user_feedbacks = [v for chat_id in owned for v in feedbacks_by_chat[chat_id]]
        total_messages = sum(message_counts[chat_id] for chat_id in owned)
        total_app = sum(app_counts[key] for key in {user.email, user.id} if key)
        active = user.is_active(now)

        average = 0
        if user_feedbacks:
            average = _round_half_up(_mean([_percent_rating(v.rating) for v in user_feedbacks]))

        rows.append(
            {
                "_id": user.id,
                "name": user.display_name,
                "email": user.email,
                "lastLogin": _iso(ensure_aware(user.last_login)) if user.last_login else None,
                "createdAt": safe_format_date(user.created_at, now),
                "totalChats": len(owned),
                "totalMessages": total_messages,
                "totalFeedbacks": len(user_feedbacks),
                "totalApplicationFeedbacks": total_app,
                "averageRating": average,
                "role": user.role or UserRole.USER.value,
                "isActive": active,
                "activityScore": activity_score(
                    len(owned), total_messages, len(user_feedbacks), total_app, active
                ),
            }
        )

    rows.sort(key=lambda row: row["activityScore"], reverse=True)
    return rows


def top_users(analytics: list[dict[str, Any]], limit: int = 10) -> list[dict[str, Any]]:
    return analytics[: max(limit, 0)]


def user_growth(users: Iterable[User], total: int, now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """New users per day over the last 30 days with a running total."""
    now = now or utcnow()
    days = [d.date().isoformat() for d in _last_days(now, ACTIVE_USER_DAYS)]
    new_users = dict.fromkeys(days, 0)
    for user in users:
        day = safe_date_string(user.created_at)
        if day in new_users:
            new_users[day] += 1

    running = total - sum(new_users.values())
    rows = []
    for day in days:
        running += new_users[day]
        rows.append({"date": day, "newUsers": new_users[day], "totalUsers": running})
    return rows


def user_activity(
    chats: Iterable[Chat],
    messages: Iterable[Message],
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """
    Daily active users, new chats and messages over the last 30 days.

    A user is active on a day when they created a chat or a message was
    posted in one of their chats.
    """
    now = now or utcnow()
    chats = list(chats)
    owners = {c.id: c.user_id for c in chats}

    chats_per_day: Counter = Counter()
    messages_per_day: Counter = Counter()
    active: dict[str, set[str]] = defaultdict(set)
    for chat in chats:
        day = safe_date_string(chat.created_at)
        if day:
            chats_per_day[day] += 1
            active[day].add(chat.user_id)
    for message in messages:
        day = safe_date_string(message.created_at)
        if day:
            messages_per_day[day] += 1
            if message.chat_id in owners:
                active[day].add(owners[message.chat_id])

    rows = []
    for start in _last_days(now, ACTIVE_USER_DAYS):
        day = start.date().isoformat()
        rows.append(
            {
                "date": day,
                "activeUsers": len(active.get(day, ())),
                "totalChats": chats_per_day[day],
                "totalMessages": messages_per_day[day],
            }
        )
    return rows


def export_users_csv(analytics: Iterable[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(USERS_CSV_HEADER)
    for row in analytics:
        writer.writerow(
            [
                row["_id"],
                row["name"],
                row["email"],
                row["lastLogin"] or "Never",
                row["createdAt"],
                row["totalChats"],
                row["totalMessages"],
                row["totalFeedbacks"],
                row["totalApplicationFeedbacks"],
                row["averageRating"],
                row["role"],
                "Yes" if row["isActive"] else "No",
                row["activityScore"],
            ]
        )
    return buffer.getvalue().rstrip("\n")


# =============================================================================
# Service
# =============================================================================


class DashboardService:
    """
    Loads the collections and runs the aggregations.

    Storage failures are logged and raised as ``DatabaseError``.
    """

    def __init__(
        self,
        users: UserRepository,
        chats: ChatRepository,
        messages: MessageRepository,
        feedbacks: FeedbackRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.users = users
        self.chats = chats
        self.messages = messages
        self.feedbacks = feedbacks
        self.clock = clock

    async def _run(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except CodeConnectError:
            raise
        except Exception as e:
            logger.exception("Dashboard aggregation failed", aggregation=name)
            raise DatabaseError(f"Failed to load {name}", {"error": str(e)}) from e

    async def chat_overview(self) -> list[dict[str, Any]]:
        async def load():
            return chat_overview(
                await self.chats.list_all(),
                await self.messages.list_all(),
                await self.feedbacks.list_all(),
                await self.users.list_all(),
                now=self.clock(),
            )

        return await self._run("chat overview", load)

    async def feedback_overview(self) -> list[dict[str, Any]]:
        async def load():
            return feedback_overview(
                await self.feedbacks.list_all(),
                await self.messages.list_all(),
                await self.chats.list_all(),
                await self.users.list_all(),
                now=self.clock(),
            )

        return await self._run("feedback overview", load)

    async def feedback_metrics(self) -> dict[str, Any]:
        async def load():
            return feedback_metrics(
                await self.feedbacks.list_all(),
                await self.chats.list_all(),
                now=self.clock(),
            )

        return await self._run("feedback metrics", load)

    async def model_performance(self) -> dict[str, Any]:
        async def load():
            return model_performance(
                await self.messages.list_all(),
                await self.feedbacks.list_all(),
                now=self.clock(),
            )

        return await self._run("model performance", load)

    async def messages_count(self) -> dict[str, Any]:
        async def load():
            return messages_count(
                await self.messages.count(role=MessageRole.ASSISTANT.value),
                await self.messages.count(),
                await self.messages.count_by_role(),
            )

        return await self._run("message counts", load)

    async def user_analytics(self) -> list[dict[str, Any]]:
        async def load():
            return user_analytics(
                await self.users.list_all(),
                await self.chats.list_all(),
                await self.messages.list_all(),
                await self.feedbacks.list_all(),
                await self.feedbacks.list_application_feedback(),
                now=self.clock(),
            )

        return await self._run("user analytics", load)

    async def top_users(self, limit: int = 10) -> list[dict[str, Any]]:
        return top_users(await self.user_analytics(), limit)

    async def user_growth(self) -> list[dict[str, Any]]:
        async def load():
            return user_growth(await self.users.list_all(), await self.users.count(), now=self.clock())

        return await self._run("user growth", load)

    async def user_activity(self) -> list[dict[str, Any]]:
        async def load():
            return user_activity(
                await self.chats.list_all(),
                await self.messages.list_all(),
                now=self.clock(),
            )

        return await self._run("user activity", load)

    async def export_users_csv(self) -> str:
        return export_users_csv(await self.user_analytics())

    async def update_user_role(self, user_id: Optional[str], role: Optional[str]) -> dict[str, Any]:
        """
        Change a user's role.

        Raises:
            ValidationError: If the id is not an ObjectId or the role is unknown
            UserNotFoundError: If no user has this id
        """
        if not user_id or not role:
            raise ValidationError("User ID and role are required")
        if not is_valid_object_id(user_id):
            raise ValidationError("Invalid user ID format")

        role = role.lower()
        if role not in (UserRole.USER.value, UserRole.ADMIN.value):
            raise ValidationError("Invalid role. Must be 'user' or 'admin'")

        user = await self._run("user role update", lambda: self.users.update_role(user_id, UserRole(role)))
        if user is None:
            raise UserNotFoundError(user_id)

        logger.info("User role updated", user_id=user_id, role=role)
        return {
            "success": True,
            "message": f"User role updated to {role}",
            "user": {"_id": user.id, "name": user.name, "email": user.email, "role": user.role},
        }
