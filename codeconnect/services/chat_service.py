"""
Chat service: relays queries to the chat backend and manages chat history.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from codeconnect.core.constants import NEW_CHAT_TITLE, MessageRole, StreamEventType
from codeconnect.core.exceptions import (
    AuthorizationError,
    ChatBackendError,
    ChatNotFoundError,
    ValidationError,
)
from codeconnect.core.logging import get_logger
from codeconnect.core.security import generate_message_id
from codeconnect.domain.chat import Chat, FileAttachment, Message, SharedUser, format_files_for_query
from codeconnect.domain.stream import StreamEvent
from codeconnect.domain.user import User
from codeconnect.integrations.backend_client import ChatBackendClient
from codeconnect.repositories.chat_repo import UNSHARE_ALL, ChatRepository, MessageRepository
from codeconnect.repositories.user_repo import UserRepository
from codeconnect.services.model_catalog import ModelCatalog
from codeconnect.services.stream_parser import (
    MessageAssembler,
    SSEDecoder,
    format_sse,
    translate_upstream_event,
)
from codeconnect.services.title_generator import TitleGenerator, fallback_title

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 100


@dataclass
class QueryContext:
    """A validated query whose user message is already persisted."""

    chat_id: str
    query: str
    user: User
    model: Optional[str]
    user_message_id: str
    assistant_message_id: str = field(default_factory=generate_message_id)


@dataclass
class QueryResult:
    """Assembled answer for the non-streaming query endpoint."""

    chat_id: str
    message_id: str
    content: str
    model: Optional[str]
    progress: list[dict[str, Any]] = field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        return {
            "chatId": self.chat_id,
            "messageId": self.message_id,
            "content": self.content,
            "model": self.model,
            "progress": self.progress,
        }


class ChatService:
    """
    Service for chat queries and chat history.

    Queries are forwarded to the chat backend; the user message is stored
    before streaming starts and the assistant message once the stream ends.
    """

    def __init__(
        self,
        chats: ChatRepository,
        messages: MessageRepository,
        users: UserRepository,
        backend: ChatBackendClient,
        title_generator: TitleGenerator,
        models: ModelCatalog,
    ) -> None:
        self.chats = chats
        self.messages = messages
        self.users = users
        self.backend = backend
        self.title_generator = title_generator
        self.models = models
        self._background: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def prepare_query(
        self,
        user: User,
        chat_id: str,
        query: str,
        model: Optional[str] = None,
        files: Optional[list[FileAttachment]] = None,
    ) -> QueryContext:
        """
        Validate a query, create the chat if needed and store the user message.

        Raises:
            ValidationError: If the query or chat id is empty
            ChatNotFoundError: If the chat exists but is not visible to the user
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Query is required")
        if not chat_id:
            raise ValidationError("Chat ID is required")

        chat = await self.chats.get_with_permissions(chat_id, user.id, user.email)
        if chat is None:
            if not await self.chats.create(Chat(id=chat_id, user_id=user.id, title=NEW_CHAT_TITLE)):
                logger.warning("Query on unreadable chat rejected", chat_id=chat_id, user_id=user.id)
                raise ChatNotFoundError(chat_id)
            logger.info("Chat created", chat_id=chat_id, user_id=user.id)
            self.schedule_title_generation(chat_id, query)
        elif not await self.messages.list_by_chat(chat_id):
            self.schedule_title_generation(chat_id, query)

        full_query = format_files_for_query(query, files)
        user_message = Message(
            id=generate_message_id(),
            chat_id=chat_id,
            role=MessageRole.USER,
            content=full_query,
            files=files or None,
        )
        await self.messages.save_many([user_message])

        return QueryContext(
            chat_id=chat_id,
            query=full_query,
            user=user,
            model=self.models.fallback_model(model),
            user_message_id=user_message.id,
        )

    async def relay(self, context: QueryContext) -> AsyncIterator[StreamEvent]:
        """
        Yield translated backend events until the backend signals completion.

        The assistant message is persisted with the joined non-progress
        content whether the stream completes or fails.
        """
        decoder = SSEDecoder()
        parts: list[str] = []
        chunks = self.backend.stream_query(
            context.query,
            context.chat_id,
            context.user.username,
            model=context.model,
        )

        try:
            finished = False
            async for chunk in chunks:
                for event, payload in decoder.feed(chunk):
                    translated = translate_upstream_event(event, payload)
                    if translated is None:
                        continue
                    if translated.done:
                        finished = True
                        break
                    if not translated.is_progress:
                        parts.append(translated.content)
                    yield translated
                if finished:
                    break

            if not finished:
                for event, payload in decoder.flush():
                    translated = translate_upstream_event(event, payload)
                    if translated is None or translated.done:
                        continue
                    if not translated.is_progress:
                        parts.append(translated.content)
                    yield translated
        finally:
            await chunks.aclose()
            await self._save_assistant_message(context, "".join(parts))

    async def stream_query(self, context: QueryContext) -> AsyncIterator[str]:
        """SSE frames for the browser; a backend failure becomes a final error frame."""
        try:
            async for event in self.relay(context):
                yield format_sse(event)
        except ChatBackendError as e:
            logger.error("Chat stream failed", chat_id=context.chat_id, error=e.message)
            yield format_sse(
                StreamEvent(
                    type=StreamEventType.ERROR,
                    content="Failed to get AI response",
                    done=True,
                    error=e.message,
                )
            )

    async def query(self, context: QueryContext) -> QueryResult:
        """Run a query to completion and return the assembled answer."""
        assembler = MessageAssembler()
        async for event in self.relay(context):
            assembler.add(event)
        assembler.flush()

        return QueryResult(
            chat_id=context.chat_id,
            message_id=context.assistant_message_id,
            content=assembler.content,
            model=context.model,
            progress=[
                {"content": p.content, "details": p.details or {}}
                for p in assembler.progress
            ],
        )

    async def _save_assistant_message(self, context: QueryContext, content: str) -> None:
        message = Message(
            id=context.assistant_message_id,
            chat_id=context.chat_id,
            role=MessageRole.ASSISTANT,
            content=content,
            model=context.model,
        )
        await self.messages.save_many([message])
        await self.chats.touch(context.chat_id)
        logger.info(
            "Assistant message saved",
            chat_id=context.chat_id,
            message_id=message.id,
            content_length=len(content),
        )

    # -------------------------------------------------------------------------
    # Titles
    # -------------------------------------------------------------------------

    def schedule_title_generation(self, chat_id: str, query: str) -> asyncio.Task:
        task = asyncio.create_task(self.generate_title_in_background(chat_id, query))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def generate_title_in_background(self, chat_id: str, query: str) -> str:
        """Generate a title and store it, falling back to the query prefix on failure."""
        try:
            title = await self.title_generator.generate_chat_title(query)
            await self.chats.update_title(chat_id, title)
        except Exception:
            logger.exception("Background title generation failed", chat_id=chat_id)
            title = fallback_title(query)
            await self.chats.update_title(chat_id, title)

        logger.info("Chat title updated", chat_id=chat_id, title=title)
        return title

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def generate_title(self, user: User, chat_id: str, query: str) -> str:
        if not query or not query.strip():
            raise ValidationError("Query is required and must be a string")
        await self._readable_chat(user, chat_id)
        return await self.generate_title_in_background(chat_id, query.strip())

    async def update_title(self, user: User, chat_id: str, title: str) -> str:
        """
        Rename a chat.

        Raises:
            ValidationError: If the trimmed title is empty or longer than 100 characters
            ChatNotFoundError: If the chat is not visible to the user
        """
        trimmed = (title or "").strip()
        if not trimmed or len(trimmed) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be between 1 and {MAX_TITLE_LENGTH} characters")

        await self._readable_chat(user, chat_id)
        await self.chats.update_title(chat_id, trimmed)
        return trimmed

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def list_history(self, user: User) -> list[Chat]:
        """Owned and shared chats; shared ones carry the owner's name."""
        chats = await self.chats.list_for_user(user.id, user.email)
        owners: dict[str, str] = {}
        for chat in chats:
            if chat.is_owner(user.id):
                continue
            if chat.user_id not in owners:
                owner = await self.users.get(chat.user_id)
                owners[chat.user_id] = owner.display_name if owner else "Unknown"
            chat.owner_name = owners[chat.user_id]
        return chats

    async def get_chat(self, user: User, chat_id: str) -> tuple[Chat, list[Message]]:
        chat = await self._readable_chat(user, chat_id)
        return chat, await self.messages.list_by_chat(chat_id)

    async def delete_chat(self, user: User, chat_id: str) -> None:
        chat = await self.chats.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        if not chat.is_owner(user.id):
            raise AuthorizationError("Only the owner can delete a chat")

        await self.chats.delete(chat_id)
        logger.info("Chat deleted", chat_id=chat_id, user_id=user.id)

    async def _readable_chat(self, user: User, chat_id: str) -> Chat:
        chat = await self.chats.get_with_permissions(chat_id, user.id, user.email)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    # -------------------------------------------------------------------------
    # Sharing
    # -------------------------------------------------------------------------

    async def _owned_chat(self, user: User, chat_id: str) -> Chat:
        chat = await self.chats.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        if not chat.is_owner(user.id):
            raise AuthorizationError("Only the owner can change sharing for this chat")
        return chat

    async def share_chat(self, user: User, chat_id: str, users: list[SharedUser]) -> None:
        if not users:
            raise ValidationError("Missing required fields")
        await self._owned_chat(user, chat_id)
        await self.chats.share(chat_id, users)
        logger.info("Chat shared", chat_id=chat_id, shared_count=len(users))

    async def unshare_chat(self, user: User, chat_id: str, user_id: Optional[str] = None) -> None:
        await self._owned_chat(user, chat_id)
        await self.chats.unshare(chat_id, user_id or UNSHARE_ALL)
        logger.info("Chat unshared", chat_id=chat_id, removed=user_id or UNSHARE_ALL)

    async def get_shared_users(self, user: User, chat_id: str) -> dict[str, Any]:
        chat = await self.chats.get(chat_id)
        if chat is None or not (chat.is_owner(user.id) or chat.is_shared_with(user.email)):
            raise AuthorizationError(
                "You don't have permission to access this chat's sharing information"
            )
        return {
            "sharedWith": [u.to_api() for u in chat.shared_with],
            "owner": {"userId": chat.user_id},
        }

    # -------------------------------------------------------------------------
    # Backend session control
    # -------------------------------------------------------------------------

    async def reset_chat(self, user: User, chat_id: str) -> dict[str, Any]:
        if not chat_id:
            raise ValidationError("Chat ID is required")
        return await self.backend.reset_chat(chat_id, user.username) or {}

    async def new_chat(self, user: User) -> dict[str, Any]:
        return await self.backend.new_chat(user.username) or {}
