"""
Unit tests for the in-memory repositories.
"""

from types import SimpleNamespace
from typing import Any

import pytest
from pymongo import ReplaceOne

from codeconnect.core.constants import ChatVisibility, MessageRole, UserRole
from codeconnect.domain.chat import Chat, Message, SharedUser
from codeconnect.domain.feedback import Vote
from codeconnect.repositories import (
    InMemoryChatRepository,
    InMemoryFeedbackRepository,
    InMemoryMessageRepository,
    InMemoryUserRepository,
    MongoChatRepository,
    MongoMessageRepository,
)
from codeconnect.repositories.base import matches_filters
from codeconnect.repositories.chat_repo import UNSHARE_ALL

OWNER_ID = "a" * 24
GUEST = SharedUser(user_id="b" * 24, name="Sam Reviewer", email="sam@example.com")


@pytest.fixture
def messages() -> InMemoryMessageRepository:
    return InMemoryMessageRepository()


@pytest.fixture
def feedbacks() -> InMemoryFeedbackRepository:
    return InMemoryFeedbackRepository()


@pytest.fixture
def chats(messages: InMemoryMessageRepository, feedbacks: InMemoryFeedbackRepository) -> InMemoryChatRepository:
    return InMemoryChatRepository(messages, feedbacks)


def test_matches_filters() -> None:
    document = {"userId": "u1", "role": "user"}
    assert matches_filters(document, None)
    assert matches_filters(document, {"role": "user"})
    assert not matches_filters(document, {"role": "admin"})


@pytest.mark.asyncio
async def test_reads_return_copies(chats: InMemoryChatRepository) -> None:
    await chats.save(Chat(id="chat-1", user_id=OWNER_ID))

    chat = await chats.get("chat-1")
    chat.title = "Changed locally"

    assert (await chats.get("chat-1")).title == "New Chat"


@pytest.mark.asyncio
async def test_permissions(chats: InMemoryChatRepository) -> None:
    await chats.save(Chat(id="chat-1", user_id=OWNER_ID))

    assert await chats.get_with_permissions("chat-1", OWNER_ID, None) is not None
    assert await chats.get_with_permissions("chat-1", GUEST.user_id, GUEST.email) is None

    await chats.share("chat-1", [GUEST])
    assert await chats.get_with_permissions("chat-1", GUEST.user_id, GUEST.email) is not None
    assert await chats.get_with_permissions("missing", OWNER_ID, None) is None


@pytest.mark.asyncio
async def test_share_dedupes_and_unshare_resets_visibility(chats: InMemoryChatRepository) -> None:
    await chats.save(Chat(id="chat-1", user_id=OWNER_ID))
    other = SharedUser(user_id="c" * 24, name="Eve", email="eve@example.com")

    assert await chats.share("chat-1", [GUEST, GUEST, other])
    chat = await chats.get("chat-1")
    assert [u.user_id for u in chat.shared_with] == [GUEST.user_id, other.user_id]
    assert chat.visibility == ChatVisibility.SHARED.value

    await chats.unshare("chat-1", GUEST.user_id)
    chat = await chats.get("chat-1")
    assert [u.user_id for u in chat.shared_with] == [other.user_id]
    assert chat.visibility == ChatVisibility.SHARED.value

    await chats.unshare("chat-1", UNSHARE_ALL)
    chat = await chats.get("chat-1")
    assert chat.shared_with == []
    assert chat.visibility == ChatVisibility.PRIVATE.value

    assert not await chats.share("missing", [GUEST])


@pytest.mark.asyncio
async def test_list_for_user_orders_by_activity(chats: InMemoryChatRepository) -> None:
    await chats.save(Chat(id="old", user_id=OWNER_ID))
    await chats.save(Chat(id="other", user_id=GUEST.user_id))
    await chats.save(Chat(id="new", user_id=OWNER_ID))
    await chats.share("other", [SharedUser(user_id=OWNER_ID, email="dana@example.com")])
    await chats.update_title("old", "Renamed")

    listed = await chats.list_for_user(OWNER_ID, "dana@example.com")
    assert [c.id for c in listed] == ["old", "other", "new"]


@pytest.mark.asyncio
async def test_delete_cascades_to_messages_and_votes(
    chats: InMemoryChatRepository,
    messages: InMemoryMessageRepository,
    feedbacks: InMemoryFeedbackRepository,
) -> None:
    await chats.save(Chat(id="chat-1", user_id=OWNER_ID))
    await messages.save_many(
        [
            Message(id="m1", chat_id="chat-1", role=MessageRole.USER, content="Hi"),
            Message(id="m2", chat_id="chat-1", role=MessageRole.ASSISTANT, content="Hello"),
            Message(id="m3", chat_id="chat-2", role=MessageRole.USER, content="Other chat"),
        ]
    )
    await feedbacks.upsert_vote(Vote(id="v1", chat_id="chat-1", message_id="m2", user_id=OWNER_ID))

    assert await chats.delete("chat-1")

    assert await messages.list_by_chat("chat-1") == []
    assert [m.id for m in await messages.list_all()] == ["m3"]
    assert await feedbacks.list_by_chat("chat-1") == []
    assert not await chats.exists("chat-1")


@pytest.mark.asyncio
async def test_message_counts(messages: InMemoryMessageRepository) -> None:
    await messages.save_many(
        [
            Message(id="m1", chat_id="c", role=MessageRole.USER),
            Message(id="m2", chat_id="c", role=MessageRole.ASSISTANT),
            Message(id="m3", chat_id="c", role=MessageRole.USER),
        ]
    )
    assert await messages.count() == 3
    assert await messages.count(role="user") == 2
    assert await messages.count_by_role() == {"user": 2, "assistant": 1}


@pytest.mark.asyncio
async def test_upsert_vote_keys_on_message(feedbacks: InMemoryFeedbackRepository) -> None:
    await feedbacks.upsert_vote(Vote(id="v1", chat_id="c", message_id="m1", user_id=OWNER_ID, is_upvoted=True))
    updated = await feedbacks.upsert_vote(
        Vote(id="v2", chat_id="c", message_id="m1", user_id=OWNER_ID, rating=35, comments="Too vague")
    )

    assert updated.id == "v1"
    assert updated.is_upvoted is False
    assert updated.rating == 35
    assert [v.id for v in await feedbacks.list_all()] == ["v1"]


@pytest.mark.asyncio
async def test_users_get_or_create_and_roles() -> None:
    users = InMemoryUserRepository()

    created = await users.get_or_create("dana@example.com", "Dana Dev")
    again = await users.get_or_create("dana@example.com", "Someone Else")
    assert again.id == created.id
    assert again.name == "Dana Dev"
    assert created.is_active()
    assert await users.count() == 1

    promoted = await users.update_role(created.id, UserRole.ADMIN)
    assert promoted.is_admin
    assert (await users.get(created.id)).is_admin
    assert await users.update_role("0" * 24, UserRole.ADMIN) is None


@pytest.mark.asyncio
async def test_application_feedback_is_copied(feedbacks: InMemoryFeedbackRepository) -> None:
    document = {"userEmail": "dana@example.com", "rating": 4}
    feedbacks.add_application_feedback(document)
    document["rating"] = 1

    assert await feedbacks.list_application_feedback() == [{"userEmail": "dana@example.com", "rating": 4}]


@pytest.mark.asyncio
async def test_save_many_replaces_messages_with_same_id(messages: InMemoryMessageRepository) -> None:
    await messages.save_many([Message(id="m1", chat_id="c", role=MessageRole.ASSISTANT, content="Partial")])
    await messages.save_many([Message(id="m1", chat_id="c", role=MessageRole.ASSISTANT, content="Full answer")])

    assert [m.content for m in await messages.list_by_chat("c")] == ["Full answer"]


@pytest.mark.asyncio
async def test_create_never_replaces_existing_chat(chats: InMemoryChatRepository) -> None:
    assert await chats.create(Chat(id="chat-1", user_id=OWNER_ID, title="Mine"))
    assert not await chats.create(Chat(id="chat-1", user_id=GUEST.user_id))

    chat = await chats.get("chat-1")
    assert chat.user_id == OWNER_ID
    assert chat.title == "Mine"


# =============================================================================
# MongoDB write paths
# =============================================================================


class FakeCollection:
    """Records writes; ``update_one`` upserts only ids it has not seen."""

    def __init__(self) -> None:
        self.ids: set[str] = set()
        self.writes: list[tuple[str, Any]] = []

    async def bulk_write(self, requests: list[Any], ordered: bool = True) -> None:
        self.writes.append(("bulk_write", requests))

    async def update_one(self, filter: dict[str, Any], update: dict[str, Any], upsert: bool = False) -> Any:
        self.writes.append(("update_one", update))
        if filter["id"] in self.ids or not upsert:
            return SimpleNamespace(matched_count=1, upserted_id=None)
        self.ids.add(filter["id"])
        return SimpleNamespace(matched_count=0, upserted_id="new-object-id")


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def collection(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


@pytest.mark.asyncio
async def test_mongo_save_many_upserts_by_id() -> None:
    database = FakeDatabase()
    repo = MongoMessageRepository(database)
    message = Message(id="m1", chat_id="c", role=MessageRole.USER, content="Hi")

    await repo.save_many([message])

    [(operation, requests)] = database.collection("messages").writes
    assert operation == "bulk_write"
    assert requests == [ReplaceOne({"id": "m1"}, message.to_document(), upsert=True)]


@pytest.mark.asyncio
async def test_mongo_create_only_sets_on_insert() -> None:
    database = FakeDatabase()
    repo = MongoChatRepository(database)

    assert await repo.create(Chat(id="chat-1", user_id=OWNER_ID))
    assert not await repo.create(Chat(id="chat-1", user_id=GUEST.user_id))

    updates = [update for _, update in database.collection("chats").writes]
    assert all(set(update) == {"$setOnInsert"} for update in updates)
    assert str(updates[0]["$setOnInsert"]["userId"]) == OWNER_ID
