"""
Feedback (vote) repository.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Optional

from pydantic.alias_generators import to_camel

from codeconnect.core.constants import APPLICATION_FEEDBACKS_COLLECTION, FEEDBACKS_COLLECTION
from codeconnect.core.logging import get_logger
from codeconnect.domain.base import utcnow
from codeconnect.domain.feedback import FeedbackFilters, FeedbackPage, JiraIssueRecord, Vote
from codeconnect.repositories.base import BaseRepository, matches_filters
from codeconnect.repositories.database import MongoDatabase, normalize_document, to_object_id

logger = get_logger(__name__)

# Fields replaced when a vote for the same message is cast again
_VOTE_UPDATE_FIELDS = (
    "userId",
    "isUpvoted",
    "comments",
    "rating",
    "lastModifiedAt",
    "hasJiraIssue",
    "category",
    "jiraIssue",
    "jiraCreationType",
)


class FeedbackRepository(BaseRepository[Vote]):
    """Votes on assistant messages, at most one per message."""

    @abstractmethod
    async def upsert_vote(self, vote: Vote) -> Vote:
        """Update the vote for ``vote.message_id`` if one exists, insert otherwise."""
        ...

    @abstractmethod
    async def list_by_chat(self, chat_id: str) -> list[Vote]:
        ...

    @abstractmethod
    async def list_all(self) -> list[Vote]:
        ...

    @abstractmethod
    async def history_for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 10,
        filters: Optional[FeedbackFilters] = None,
        sort_field: str = "createdAt",
        sort_direction: int = -1,
    ) -> FeedbackPage:
        ...

    @abstractmethod
    async def update_jira_issue(self, feedback_id: str, updates: dict[str, Any]) -> bool:
        """Set ``jiraIssue.<field>`` values on a vote that has a Jira issue."""
        ...

    @abstractmethod
    async def delete_by_chat(self, chat_id: str) -> int:
        ...

    @abstractmethod
    async def list_application_feedback(self) -> list[dict[str, Any]]:
        """Raw site-feedback documents, used only for per-user counts."""
        ...


def _jira_update_fields(updates: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(key): value for key, value in updates.items() if value is not None}


class InMemoryFeedbackRepository(FeedbackRepository):
    """
    In-memory feedback repository for development/testing.
    """

    def __init__(self) -> None:
        self._votes: dict[str, Vote] = {}
        self._app_feedback: list[dict[str, Any]] = []

    async def get(self, id: str) -> Optional[Vote]:
        vote = self._votes.get(id)
        return vote.model_copy(deep=True) if vote else None

    async def save(self, entity: Vote) -> Vote:
        self._votes[entity.id] = entity.model_copy(deep=True)
        return entity

    async def upsert_vote(self, vote: Vote) -> Vote:
        for existing in self._votes.values():
            if existing.message_id == vote.message_id:
                existing.user_id = vote.user_id
                existing.is_upvoted = vote.is_upvoted
                existing.comments = vote.comments
                existing.rating = vote.rating
                existing.has_jira_issue = vote.has_jira_issue
                existing.category = vote.category
                existing.last_modified_at = utcnow()
                if vote.jira_issue is not None:
                    existing.jira_issue = vote.jira_issue.model_copy(deep=True)
                    existing.jira_creation_type = vote.jira_creation_type
                return existing.model_copy(deep=True)

        await self.save(vote)
        return vote

    async def delete(self, id: str) -> bool:
        return self._votes.pop(id, None) is not None

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Vote]:
        votes = [v for v in self._votes.values() if matches_filters(v.to_document(), filters)]
        votes.sort(key=lambda v: v.created_at)
        return [v.model_copy(deep=True) for v in votes[offset : offset + limit]]

    async def list_by_chat(self, chat_id: str) -> list[Vote]:
        votes = sorted(
            (v for v in self._votes.values() if v.chat_id == chat_id),
            key=lambda v: v.created_at,
        )
        return [v.model_copy(deep=True) for v in votes]

    async def list_all(self) -> list[Vote]:
        votes = sorted(self._votes.values(), key=lambda v: v.created_at)
        return [v.model_copy(deep=True) for v in votes]

    async def history_for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 10,
        filters: Optional[FeedbackFilters] = None,
        sort_field: str = "createdAt",
        sort_direction: int = -1,
    ) -> FeedbackPage:
        votes = [
            v for v in self._votes.values()
            if v.user_id == user_id and (filters is None or filters.matches(v))
        ]
        votes.sort(
            key=lambda v: v.to_document().get(sort_field) or 0,
            reverse=sort_direction < 0,
        )
        start = (page - 1) * page_size
        selected = [v.model_copy(deep=True) for v in votes[start : start + page_size]]
        return FeedbackPage.build(selected, len(votes), page, page_size)

    async def update_jira_issue(self, feedback_id: str, updates: dict[str, Any]) -> bool:
        vote = self._votes.get(feedback_id)
        if vote is None or not vote.has_jira_issue or vote.jira_issue is None:
            return False
        data = vote.jira_issue.to_document()
        data.update(_jira_update_fields(updates))
        vote.jira_issue = JiraIssueRecord.model_validate(data)
        vote.updated_at = utcnow()
        return True

    async def delete_by_chat(self, chat_id: str) -> int:
        ids = [vid for vid, v in self._votes.items() if v.chat_id == chat_id]
        for vid in ids:
            del self._votes[vid]
        return len(ids)

    async def list_application_feedback(self) -> list[dict[str, Any]]:
        return list(self._app_feedback)

    def add_application_feedback(self, document: dict[str, Any]) -> None:
        self._app_feedback.append(dict(document))


class MongoFeedbackRepository(FeedbackRepository):
    """
    MongoDB feedback repository. ``_id`` is an ObjectId, ``userId`` too.
    """

    def __init__(self, database: MongoDatabase) -> None:
        self.database = database

    @property
    def _collection(self):
        return self.database.collection(FEEDBACKS_COLLECTION)

    @staticmethod
    def _to_model(document: dict[str, Any]) -> Vote:
        return Vote.from_document(normalize_document(document))

    @staticmethod
    def _to_document(vote: Vote) -> dict[str, Any]:
        document = vote.to_document()
        document.pop("id", None)
        document["userId"] = to_object_id(vote.user_id)
        return document

    async def get(self, id: str) -> Optional[Vote]:
        document = await self._collection.find_one({"_id": to_object_id(id)})
        return self._to_model(document) if document else None

    async def save(self, entity: Vote) -> Vote:
        await self._collection.replace_one(
            {"_id": to_object_id(entity.id)}, self._to_document(entity), upsert=True
        )
        return entity

    async def upsert_vote(self, vote: Vote) -> Vote:
        existing = await self._collection.find_one({"messageId": vote.message_id})
        if existing is None:
            await self.save(vote)
            logger.info("Vote created", chat_id=vote.chat_id, message_id=vote.message_id)
            return vote

        document = self._to_document(vote)
        document["lastModifiedAt"] = utcnow()
        update = {k: document[k] for k in _VOTE_UPDATE_FIELDS if k in document}
        await self._collection.update_one(
            {"messageId": vote.message_id, "chatId": vote.chat_id}, {"$set": update}
        )
        logger.info("Vote updated", chat_id=vote.chat_id, message_id=vote.message_id)
        return self._to_model({**existing, **update})

    async def delete(self, id: str) -> bool:
        result = await self._collection.delete_one({"_id": to_object_id(id)})
        return result.deleted_count > 0

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Vote]:
        cursor = self._collection.find(filters or {}).sort("createdAt", 1).skip(offset).limit(limit)
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def list_by_chat(self, chat_id: str) -> list[Vote]:
        cursor = self._collection.find({"chatId": chat_id}).sort("createdAt", 1)
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def list_all(self) -> list[Vote]:
        cursor = self._collection.find({}).sort("createdAt", 1)
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def history_for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 10,
        filters: Optional[FeedbackFilters] = None,
        sort_field: str = "createdAt",
        sort_direction: int = -1,
    ) -> FeedbackPage:
        query: dict[str, Any] = {"userId": to_object_id(user_id)}
        if filters is not None:
            query.update(filters.to_query())

        cursor = (
            self._collection.find(query)
            .sort(sort_field, sort_direction)
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        feedbacks = [self._to_model(doc) for doc in await cursor.to_list(None)]
        total_count = await self._collection.count_documents(query)
        return FeedbackPage.build(feedbacks, total_count, page, page_size)

    async def update_jira_issue(self, feedback_id: str, updates: dict[str, Any]) -> bool:
        fields: dict[str, Any] = {"updatedAt": utcnow()}
        for key, value in _jira_update_fields(updates).items():
            fields[f"jiraIssue.{key}"] = value

        result = await self._collection.update_one(
            {"_id": to_object_id(feedback_id), "hasJiraIssue": True}, {"$set": fields}
        )
        return result.modified_count > 0

    async def delete_by_chat(self, chat_id: str) -> int:
        result = await self._collection.delete_many({"chatId": chat_id})
        return result.deleted_count

    async def list_application_feedback(self) -> list[dict[str, Any]]:
        collection = self.database.collection(APPLICATION_FEEDBACKS_COLLECTION)
        documents = await collection.find({}, {"userId": 1, "createdAt": 1}).to_list(None)
        return [normalize_document(doc) for doc in documents]
