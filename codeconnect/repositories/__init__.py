"""
Repository implementations for data access.
"""

from codeconnect.repositories.base import BaseRepository
from codeconnect.repositories.cache_repo import TieredCache, TTLCache
from codeconnect.repositories.chat_repo import (
    ChatRepository,
    InMemoryChatRepository,
    InMemoryMessageRepository,
    MessageRepository,
    MongoChatRepository,
    MongoMessageRepository,
)
from codeconnect.repositories.database import MongoDatabase
from codeconnect.repositories.feedback_repo import (
    FeedbackRepository,
    InMemoryFeedbackRepository,
    MongoFeedbackRepository,
)
from codeconnect.repositories.user_repo import (
    InMemoryUserRepository,
    MongoUserRepository,
    UserRepository,
)

__all__ = [
    "BaseRepository",
    "MongoDatabase",
    "TTLCache",
    "TieredCache",
    "UserRepository",
    "InMemoryUserRepository",
    "MongoUserRepository",
    "ChatRepository",
    "InMemoryChatRepository",
    "MongoChatRepository",
    "MessageRepository",
    "InMemoryMessageRepository",
    "MongoMessageRepository",
    "FeedbackRepository",
    "InMemoryFeedbackRepository",
    "MongoFeedbackRepository",
]
