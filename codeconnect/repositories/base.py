"""
Base repository interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for repositories.

    Every entity repository ships an in-memory implementation for
    development and tests and a MongoDB implementation for production.
    """

    @abstractmethod
    async def get(self, id: str) -> Optional[T]:
        """Get an entity by ID."""
        ...

    @abstractmethod
    async def save(self, entity: T) -> T:
        """Insert or replace an entity."""
        ...

    @abstractmethod
    async def delete(self, id: str) -> bool:
        """Delete an entity by ID."""
        ...

    @abstractmethod
    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[T]:
        """List entities with optional equality filters on document fields."""
        ...

    async def exists(self, id: str) -> bool:
        """Check if an entity exists."""
        return await self.get(id) is not None


def matches_filters(document: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Equality match of a camelCase document against filters, as Mongo would do it."""
    if not filters:
        return True
    return all(document.get(key) == value for key, value in filters.items())
