"""
Chat endpoints: streamed queries, history, titles and sharing.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import Field

from codeconnect.api.deps import get_chat_service, get_current_user
from codeconnect.core.logging import get_logger
from codeconnect.domain.base import DocumentModel
from codeconnect.domain.chat import FileAttachment, SharedUser
from codeconnect.domain.user import User
from codeconnect.services.chat_service import ChatService

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# Request models
class QueryRequest(DocumentModel):
    """A user query for the assistant."""

    chat_id: str = Field(..., description="Client-generated chat ID")
    query: str = Field(..., description="User question")
    model: Optional[str] = Field(default=None, description="Model ID from the selector")
    files: list[FileAttachment] = Field(default_factory=list)


class TitleUpdateRequest(DocumentModel):
    title: str


class TitleGenerateRequest(DocumentModel):
    query: str


class ShareRequest(DocumentModel):
    users: list[SharedUser] = Field(default_factory=list)


class ResetRequest(DocumentModel):
    chat_id: str


@router.post("/chat/query/stream")
async def stream_query(
    request: QueryRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """
    Ask the assistant and stream the answer as server-sent events.

    The user message is stored before the stream opens, so validation
    errors are plain JSON responses.
    """
    context = await service.prepare_query(
        user, request.chat_id, request.query, model=request.model, files=request.files
    )
    logger.info(
        "Streaming chat query",
        chat_id=context.chat_id,
        model=context.model,
        query_length=len(context.query),
    )
    return StreamingResponse(
        service.stream_query(context),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/chat/query")
async def query(
    request: QueryRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    """Ask the assistant and wait for the complete answer."""
    context = await service.prepare_query(
        user, request.chat_id, request.query, model=request.model, files=request.files
    )
    result = await service.query(context)
    return {"success": True, "data": result.to_api()}


@router.get("/chat/history")
async def chat_history(
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    chats = await service.list_history(user)
    return {"chats": [chat.to_api() for chat in chats]}


@router.post("/chat/reset")
async def reset_chat(
    request: ResetRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    """Clear the backend conversation memory for a chat."""
    return await service.reset_chat(user, request.chat_id)


@router.post("/chat/new")
async def new_chat(
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    return await service.new_chat(user)


@router.get("/chat/{chat_id}")
async def get_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    chat, messages = await service.get_chat(user, chat_id)
    return {
        "chat": chat.to_api(),
        "messages": [message.to_api() for message in messages],
    }


@router.delete("/chat/{chat_id}")
async def delete_chat(
    chat_id: str,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    await service.delete_chat(user, chat_id)
    return {"success": True}


@router.patch("/chat/{chat_id}/title")
async def update_title(
    chat_id: str,
    request: TitleUpdateRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    title = await service.update_title(user, chat_id, request.title)
    return {"success": True, "title": title}


@router.post("/chat/{chat_id}/title/generate")
async def generate_title(
    chat_id: str,
    request: TitleGenerateRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    title = await service.generate_title(user, chat_id, request.query)
    return {"success": True, "title": title}


@router.post("/chat/{chat_id}/share")
async def share_chat(
    chat_id: str,
    request: ShareRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    await service.share_chat(user, chat_id, request.users)
    return {"success": True}


@router.get("/chat/{chat_id}/share")
async def shared_users(
    chat_id: str,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    return await service.get_shared_users(user, chat_id)


@router.delete("/chat/{chat_id}/share/{user_id}")
async def unshare_chat(
    chat_id: str,
    user_id: str,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    """Remove one user from the share list, or everyone with ``all``."""
    await service.unshare_chat(user, chat_id, user_id)
    return {"success": True}
