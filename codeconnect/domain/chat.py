"""
Chat and message domain models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from codeconnect.core.constants import ChatVisibility, MessageRole, NEW_CHAT_TITLE
from codeconnect.domain.base import DocumentModel, utcnow


class SharedUser(DocumentModel):
    """A user a chat has been shared with."""

    user_id: str
    name: str = ""
    email: str
    added_at: datetime = Field(default_factory=utcnow)


class Chat(DocumentModel):
    """Chat domain model. ``id`` is generated client side."""

    id: str
    user_id: str
    title: str = NEW_CHAT_TITLE
    visibility: ChatVisibility = Field(default=ChatVisibility.PRIVATE)
    shared_with: list[SharedUser] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_modified_at: datetime = Field(default_factory=utcnow)
    owner_name: Optional[str] = None

    def is_owner(self, user_id: str) -> bool:
        return self.user_id == user_id

    def is_shared_with(self, email: Optional[str]) -> bool:
        return bool(email) and any(u.email == email for u in self.shared_with)

    def can_read(self, user_id: str, email: Optional[str]) -> bool:
        """Owner, explicit share, or visibility ``shared``."""
        return (
            self.is_owner(user_id)
            or self.is_shared_with(email)
            or self.visibility == ChatVisibility.SHARED.value
        )

    def touch(self) -> None:
        self.last_modified_at = utcnow()


class FileAttachment(BaseModel):
    """A file the user attached to a query."""

    name: str
    type: str = "file"
    language: str = ""
    extension: str = ""
    content: str = ""


class CodeMetadata(DocumentModel):
    language: str = "apex"
    filename: str = ""
    code_type: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    description: str = ""


class Message(DocumentModel):
    """A message in a chat."""

    id: str
    chat_id: str
    role: MessageRole
    content: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    model: Optional[str] = None
    type: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    code_metadata: Optional[CodeMetadata] = None
    files: Optional[list[FileAttachment]] = None


def format_files_for_query(query: str, files: Optional[list[FileAttachment]]) -> str:
    """Append attached files to the query text as fenced blocks."""
    if not files:
        return query

    uploaded = "".join(
        f"Attached {f.type} ({f.name}):\n```{f.language}\n{f.content}\n```\n\n"
        for f in files
    )
    return f"{query}\n\n{uploaded}"
