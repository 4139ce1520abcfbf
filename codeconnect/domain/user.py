"""
User domain model.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from pydantic import Field

from codeconnect.core.constants import ACTIVE_USER_DAYS, UserRole
from codeconnect.domain.base import DocumentModel, ensure_aware, utcnow


class User(DocumentModel):
    """An application user, created on first sign-in."""

    id: str = Field(..., description="MongoDB ObjectId as hex string")
    email: str
    name: Optional[str] = None
    role: UserRole = Field(default=UserRole.USER)
    image: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Active users signed in within the last 30 days."""
        if self.last_login is None:
            return False
        now = now or utcnow()
        return ensure_aware(self.last_login) > now - timedelta(days=ACTIVE_USER_DAYS)

    @property
    def username(self) -> str:
        """Name as sent to the chat backend: lowercased, spaces to underscores."""
        return (self.name or "").replace(" ", "_").lower()
