"""
User repository.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Optional

from pymongo import ReturnDocument

from codeconnect.core.constants import USERS_COLLECTION, UserRole
from codeconnect.core.logging import get_logger
from codeconnect.core.security import generate_object_id
from codeconnect.domain.base import utcnow
from codeconnect.domain.user import User
from codeconnect.repositories.base import BaseRepository, matches_filters
from codeconnect.repositories.database import MongoDatabase, normalize_document, to_object_id

logger = get_logger(__name__)


class UserRepository(BaseRepository[User]):
    """Users keyed by ObjectId, looked up by email on sign-in."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def list_all(self) -> list[User]:
        ...

    @abstractmethod
    async def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        """Set a user's role. Returns None when the user does not exist."""
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    async def get_or_create(self, email: str, name: Optional[str] = None) -> User:
        """Return the user with this email, creating it on first sight."""
        user = await self.get_by_email(email)
        if user is not None:
            return user

        now = utcnow()
        user = User(
            id=generate_object_id(),
            email=email,
            name=name,
            created_at=now,
            last_login=now,
        )
        await self.save(user)
        logger.info("User created", user_id=user.id)
        return user


class InMemoryUserRepository(UserRepository):
    """
    In-memory user repository for development/testing.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    async def get(self, id: str) -> Optional[User]:
        user = self._users.get(id)
        return user.model_copy(deep=True) if user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    async def save(self, entity: User) -> User:
        self._users[entity.id] = entity.model_copy(deep=True)
        return entity

    async def delete(self, id: str) -> bool:
        return self._users.pop(id, None) is not None

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[User]:
        users = [u for u in self._users.values() if matches_filters(u.to_document(), filters)]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return [u.model_copy(deep=True) for u in users[offset : offset + limit]]

    async def list_all(self) -> list[User]:
        return [u.model_copy(deep=True) for u in self._users.values()]

    async def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.role = UserRole(role).value
        return user.model_copy(deep=True)

    async def count(self) -> int:
        return len(self._users)


class MongoUserRepository(UserRepository):
    """
    MongoDB user repository.
    """

    def __init__(self, database: MongoDatabase) -> None:
        self.database = database

    @property
    def _collection(self):
        return self.database.collection(USERS_COLLECTION)

    @staticmethod
    def _to_model(document: Optional[dict[str, Any]]) -> Optional[User]:
        if document is None:
            return None
        return User.from_document(normalize_document(document))

    async def get(self, id: str) -> Optional[User]:
        return self._to_model(await self._collection.find_one({"_id": to_object_id(id)}))

    async def get_by_email(self, email: str) -> Optional[User]:
        return self._to_model(await self._collection.find_one({"email": email}))

    async def save(self, entity: User) -> User:
        document = entity.to_document()
        document.pop("id", None)
        await self._collection.replace_one(
            {"_id": to_object_id(entity.id)}, document, upsert=True
        )
        return entity

    async def delete(self, id: str) -> bool:
        result = await self._collection.delete_one({"_id": to_object_id(id)})
        return result.deleted_count > 0

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[User]:
        cursor = (
            self._collection.find(filters or {})
            .sort("createdAt", -1)
            .skip(offset)
            .limit(limit)
        )
        return [self._to_model(doc) for doc in await cursor.to_list(None)]

    async def list_all(self) -> list[User]:
        documents = await self._collection.find({}).to_list(None)
        return [self._to_model(doc) for doc in documents]

    async def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        document = await self._collection.find_one_and_update(
            {"_id": to_object_id(user_id)},
            {"$set": {"role": UserRole(role).value, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(document)

    async def count(self) -> int:
        return await self._collection.count_documents({})
