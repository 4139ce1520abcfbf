"""
Chat and message repositories.
"""

from __future__ import annotations

from abc import abstractmethod
from collections import Counter
from typing import Any, Optional, Union

from pymongo import ReplaceOne

from codeconnect.core.constants import (
    CHATS_COLLECTION,
    FEEDBACKS_COLLECTION,
    MESSAGES_COLLECTION,
    ChatVisibility,
)
from codeconnect.core.logging import get_logger
from codeconnect.domain.base import utcnow
from codeconnect.domain.chat import Chat, Message, SharedUser
from codeconnect.repositories.base import BaseRepository, matches_filters
from codeconnect.repositories.database import MongoDatabase, normalize_document, to_object_id

logger = get_logger(__name__)

UNSHARE_ALL = "all"


def _chat_sort_key(chat: Chat) -> tuple:
    return (chat.last_modified_at, chat.created_at)


# =============================================================================
# Interfaces
# =============================================================================


class MessageRepository(BaseRepository[Message]):
    """Messages belong to a chat and are read back in creation order."""

    @abstractmethod
    async def save_many(self, messages: list[Message]) -> list[Message]:
        ...

    @abstractmethod
    async def list_by_chat(self, chat_id: str) -> list[Message]:
        ...

    @abstractmethod
    async def list_all(self) -> list[Message]:
        ...

    @abstractmethod
    async def count(self, role: Optional[str] = None) -> int:
        ...

    @abstractmethod
    async def count_by_role(self) -> dict[str, int]:
        ...

    @abstractmethod
    async def delete_by_chat(self, chat_id: str) -> int:
        ...


class ChatRepository(BaseRepository[Chat]):
    """Chats keyed by their client-generated ``id``."""

    @abstractmethod
    async def get_with_permissions(
        self, id: str, user_id: str, email: Optional[str]
    ) -> Optional[Chat]:
        """Return the chat if the user owns it, it is shared with them, or it is public-shared."""
        ...

    @abstractmethod
    async def create(self, entity: Chat) -> bool:
        """Insert a new chat; False when the id is already taken."""
        ...

    @abstractmethod
    async def update_title(self, id: str, title: str) -> bool:
        ...

    @abstractmethod
    async def touch(self, id: str) -> None:
        """Bump ``last_modified_at``."""
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, email: Optional[str]) -> list[Chat]:
        """Owned and shared chats, newest activity first, without duplicates."""
        ...

    @abstractmethod
    async def share(self, id: str, users: list[SharedUser]) -> bool:
        ...

    @abstractmethod
    async def unshare(self, id: str, user_id: Union[str, None]) -> bool:
        """Remove one shared user, or everyone when ``user_id`` is ``"all"``."""
        ...

    @abstractmethod
    async def list_all(self) -> list[Chat]:
        ...


# =============================================================================
# In-memory implementations
# =============================================================================


class InMemoryMessageRepository(MessageRepository):
    """
    In-memory message repository for development/testing.
    """

    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}

    async def get(self, id: str) -> Optional[Message]:
        message = self._messages.get(id)
        return message.model_copy(deep=True) if message else None

    async def save(self, entity: Message) -> Message:
        self._messages[entity.id] = entity.model_copy(deep=True)
        return entity

    async def save_many(self, messages: list[Message]) -> list[Message]:
        for message in messages:
            await self.save(message)
        return messages

    async def delete(self, id: str) -> bool:
        return self._messages.pop(id, None) is not None

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Message]:
        messages = [m for m in self._messages.values() if matches_filters(m.to_document(), filters)]
        messages.sort(key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in messages[offset : offset + limit]]

    async def list_by_chat(self, chat_id: str) -> list[Message]:
        messages = [m for m in self._messages.values() if m.chat_id == chat_id]
        messages.sort(key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in messages]

    async def list_all(self) -> list[Message]:
        return [m.model_copy(deep=True) for m in self._messages.values()]

    async def count(self, role: Optional[str] = None) -> int:
        return sum(1 for m in self._messages.values() if role is None or m.role == role)

    async def count_by_role(self) -> dict[str, int]:
        return dict(Counter(m.role for m in self._messages.values()))

    async def delete_by_chat(self, chat_id: str) -> int:
        ids = [mid for mid, m in self._messages.items() if m.chat_id == chat_id]
        for mid in ids:
            del self._messages[mid]
        return len(ids)


class InMemoryChatRepository(ChatRepository):
    """
    In-memory chat repository for development/testing.

    Deleting a chat cascades to the message repository and to any object
    exposing ``delete_by_chat`` passed as ``feedbacks``.
    """

    def __init__(
        self,
        messages: Optional[MessageRepository] = None,
        feedbacks: Any = None,
    ) -> None:
        self._chats: dict[str, Chat] = {}
        self._messages = messages
        self._feedbacks = feedbacks

    async def get(self, id: str) -> Optional[Chat]:
        chat = self._chats.get(id)
        return chat.model_copy(deep=True) if chat else None

    async def get_with_permissions(
        self, id: str, user_id: str, email: Optional[str]
    ) -> Optional[Chat]:
        chat = self._chats.get(id)
        if chat is None or not chat.can_read(user_id, email):
            return None
        return chat.model_copy(deep=True)

    async def save(self, entity: Chat) -> Chat:
        self._chats[entity.id] = entity.model_copy(deep=True)
        return entity

    async def create(self, entity: Chat) -> bool:
        if entity.id in self._chats:
            return False
        self._chats[entity.id] = entity.model_copy(deep=True)
        return True

    async def update_title(self, id: str, title: str) -> bool:
        chat = self._chats.get(id)
        if chat is None:
            return False
        chat.title = title
        chat.touch()
        return True

    async def touch(self, id: str) -> None:
        chat = self._chats.get(id)
        if chat is not None:
            chat.touch()

    async def delete(self, id: str) -> bool:
        removed = self._chats.pop(id, None) is not None
        if self._messages is not None:
            await self._messages.delete_by_chat(id)
        if self._feedbacks is not None:
            await self._feedbacks.delete_by_chat(id)
        return removed

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Chat]:
        chats = [c for c in self._chats.values() if matches_filters(c.to_document(), filters)]
        chats.sort(key=_chat_sort_key, reverse=True)
        return [c.model_copy(deep=True) for c in chats[offset : offset + limit]]

    async def list_for_user(self, user_id: str, email: Optional[str]) -> list[Chat]:
        chats = [
            c for c in self._chats.values()
            if c.is_owner(user_id) or c.is_shared_with(email)
        ]
        chats.sort(key=_chat_sort_key, reverse=True)
        return [c.model_copy(deep=True) for c in chats]

    async def share(self, id: str, users: list[SharedUser]) -> bool:
        chat = self._chats.get(id)
        if chat is None:
            return False
        known = {u.user_id for u in chat.shared_with}
        for user in users:
            if user.user_id not in known:
                chat.shared_with.append(user.model_copy())
                known.add(user.user_id)
        chat.visibility = ChatVisibility.SHARED.value
        chat.touch()
        return True

    async def unshare(self, id: str, user_id: Union[str, None]) -> bool:
        chat = self._chats.get(id)
        if chat is None:
            return False
        if user_id == UNSHARE_ALL:
            chat.shared_with = []
        else:
            chat.shared_with = [u for u in chat.shared_with if u.user_id != user_id]
        if not chat.shared_with:
            chat.visibility = ChatVisibility.PRIVATE.value
        chat.touch()
        return True

    async def list_all(self) -> list[Chat]:
        return [c.model_copy(deep=True) for c in self._chats.values()]


# =============================================================================
# MongoDB implementations
# =============================================================================


class MongoMessageRepository(MessageRepository):
    """
    MongoDB message repository.
    """

    def __init__(self, database: MongoDatabase) -> None:
        self.database = database

    @property
    def _collection(self):
        return self.database.collection(MESSAGES_COLLECTION)

    @staticmethod
    def _to_model(document: dict[str, Any]) -> Message:
        return Message.from_document(normalize_document(document))

    async def get(self, id: str) -> Optional[Message]:
        document = await self._collection.find_one({"id": id})
        return self._to_model(document) if document else None

    async def save(self, entity: Message) -> Message:
        await self._collection.replace_one({"id": entity.id}, entity.to_document(), upsert=True)
        return entity

    async def save_many(self, messages: list[Message]) -> list[Message]:
        if messages:
            await self._collection.bulk_write(
                [ReplaceOne({"id": m.id}, m.to_document(), upsert=True) for m in messages],
                ordered=False,
            )
        return messages

    async def delete(self, id: str) -> bool:
        result = await self._collection.delete_one({"id": id})
        return result.deleted_count > 0

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Message]:
        cursor = self._collection.find(filters or {}).sort("createdAt", 1).skip(offset).limit(limit)
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def list_by_chat(self, chat_id: str) -> list[Message]:
        cursor = self._collection.find({"chatId": chat_id}).sort("createdAt", 1)
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def list_all(self) -> list[Message]:
        return [self._to_model(doc) for doc in await self._collection.find({}).to_list(None)]

    async def count(self, role: Optional[str] = None) -> int:
        return await self._collection.count_documents({"role": role} if role else {})

    async def count_by_role(self) -> dict[str, int]:
        pipeline = [{"$group": {"_id": "$role", "count": {"$sum": 1}}}]
        rows = await self._collection.aggregate(pipeline).to_list(None)
        return {row["_id"]: row["count"] for row in rows if row.get("_id")}

    async def delete_by_chat(self, chat_id: str) -> int:
        result = await self._collection.delete_many({"chatId": chat_id})
        return result.deleted_count


class MongoChatRepository(ChatRepository):
    """
    MongoDB chat repository. ``userId`` is stored as an ObjectId.
    """

    def __init__(self, database: MongoDatabase) -> None:
        self.database = database

    @property
    def _collection(self):
        return self.database.collection(CHATS_COLLECTION)

    @staticmethod
    def _to_model(document: dict[str, Any]) -> Chat:
        return Chat.from_document(normalize_document(document))

    async def get(self, id: str) -> Optional[Chat]:
        document = await self._collection.find_one({"id": id})
        return self._to_model(document) if document else None

    async def get_with_permissions(
        self, id: str, user_id: str, email: Optional[str]
    ) -> Optional[Chat]:
        document = await self._collection.find_one(
            {
                "id": id,
                "$or": [
                    {"userId": to_object_id(user_id)},
                    {"sharedWith.email": email},
                    {"visibility": ChatVisibility.SHARED.value},
                ],
            }
        )
        return self._to_model(document) if document else None

    @staticmethod
    def _to_stored(entity: Chat) -> dict[str, Any]:
        document = entity.to_document()
        document.pop("ownerName", None)
        document["userId"] = to_object_id(entity.user_id)
        return document

    async def save(self, entity: Chat) -> Chat:
        await self._collection.replace_one({"id": entity.id}, self._to_stored(entity), upsert=True)
        return entity

    async def create(self, entity: Chat) -> bool:
        result = await self._collection.update_one(
            {"id": entity.id}, {"$setOnInsert": self._to_stored(entity)}, upsert=True
        )
        return result.upserted_id is not None

    async def update_title(self, id: str, title: str) -> bool:
        result = await self._collection.update_one(
            {"id": id}, {"$set": {"title": title, "lastModifiedAt": utcnow()}}
        )
        return result.matched_count > 0

    async def touch(self, id: str) -> None:
        await self._collection.update_one({"id": id}, {"$set": {"lastModifiedAt": utcnow()}})

    async def delete(self, id: str) -> bool:
        result = await self._collection.delete_one({"id": id})
        await self.database.collection(MESSAGES_COLLECTION).delete_many({"chatId": id})
        await self.database.collection(FEEDBACKS_COLLECTION).delete_many({"chatId": id})
        return result.deleted_count > 0

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Chat]:
        cursor = (
            self._collection.find(filters or {})
            .sort([("lastModifiedAt", -1), ("createdAt", -1)])
            .skip(offset)
            .limit(limit)
        )
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def list_for_user(self, user_id: str, email: Optional[str]) -> list[Chat]:
        clauses: list[dict[str, Any]] = [{"userId": to_object_id(user_id)}]
        if email:
            clauses.append({"sharedWith.email": email})
        cursor = self._collection.find({"$or": clauses}).sort(
            [("lastModifiedAt", -1), ("createdAt", -1)]
        )
        seen: set[str] = set()
        chats: list[Chat] = []
        for document in await cursor.to_list(None):
            chat = self._to_model(document)
            if chat.id not in seen:
                seen.add(chat.id)
                chats.append(chat)
        return chats

    async def share(self, id: str, users: list[SharedUser]) -> bool:
        document = await self._collection.find_one({"id": id}, {"sharedWith.userId": 1})
        if document is None:
            return False

        now = utcnow()
        known = {entry.get("userId") for entry in document.get("sharedWith") or []}
        entries = [
            {**u.to_document(), "addedAt": now} for u in users if u.user_id not in known
        ]
        await self._collection.update_one(
            {"id": id},
            {
                "$set": {"visibility": ChatVisibility.SHARED.value, "lastModifiedAt": now},
                "$push": {"sharedWith": {"$each": entries}},
            },
        )
        return True

    async def unshare(self, id: str, user_id: Union[str, None]) -> bool:
        now = utcnow()
        if user_id == UNSHARE_ALL:
            result = await self._collection.update_one(
                {"id": id},
                {"$set": {"visibility": ChatVisibility.PRIVATE.value, "sharedWith": [], "lastModifiedAt": now}},
            )
            return result.matched_count > 0

        result = await self._collection.update_one(
            {"id": id},
            {"$pull": {"sharedWith": {"userId": user_id}}, "$set": {"lastModifiedAt": now}},
        )
        if result.matched_count == 0:
            return False

        document = await self._collection.find_one({"id": id})
        if document is not None and not document.get("sharedWith"):
            await self._collection.update_one(
                {"id": id}, {"$set": {"visibility": ChatVisibility.PRIVATE.value}}
            )
        return True

    async def list_all(self) -> list[Chat]:
        return [self._to_model(doc) for doc in await self._collection.find({}).to_list(None)]
