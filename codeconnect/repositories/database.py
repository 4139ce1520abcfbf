"""
MongoDB client lifecycle (motor).
"""

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from codeconnect.core.config import MongoSettings
from codeconnect.core.exceptions import DatabaseError
from codeconnect.core.logging import get_logger

logger = get_logger(__name__)


def to_object_id(value: Any) -> Any:
    """Convert 24-hex strings to ObjectId; leave anything else untouched."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def normalize_document(value: Any) -> Any:
    """Recursively turn ObjectId values into strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: normalize_document(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_document(v) for v in value]
    return value


class MongoDatabase:
    """
    Owns the motor client.

    The client is created lazily on ``connect()``; collections are looked up
    by name through ``collection()``.
    """

    def __init__(self, config: MongoSettings) -> None:
        self.config = config
        self._client: Optional[AsyncIOMotorClient] = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = AsyncIOMotorClient(
            self.config.uri,
            serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            tz_aware=True,
        )
        logger.info("MongoDB client created", database=self.config.database)

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._client is None:
            raise DatabaseError("Database not connected")
        return self._client[self.config.database]

    def collection(self, name: str) -> AsyncIOMotorCollection:
        return self.db[name]

    async def ping(self) -> bool:
        """Round-trip to the server; False when unreachable."""
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning("MongoDB ping failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB client closed")
