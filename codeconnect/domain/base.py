"""
Shared base for models persisted in MongoDB.

Documents use the camelCase field names written by the web front-end
(``chatId``, ``isUpvoted``, ``lastModifiedAt`` ...), Python code uses
snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

M = TypeVar("M", bound="DocumentModel")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes coming back from storage as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DocumentModel(BaseModel):
    """Pydantic model with camelCase document mapping."""

    class Config:
        use_enum_values = True
        populate_by_name = True
        validate_default = True
        alias_generator = to_camel

    def to_document(self) -> dict[str, Any]:
        """Serialize to a MongoDB document (camelCase, None fields dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_api(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls: type[M], document: Mapping[str, Any]) -> M:
        """Build a model from a stored document; ``_id`` becomes ``id`` when missing."""
        data = dict(document)
        object_id = data.pop("_id", None)
        if object_id is not None and not data.get("id"):
            data["id"] = str(object_id)
        for key, value in list(data.items()):
            if isinstance(value, datetime):
                data[key] = ensure_aware(value)
        return cls.model_validate(data)
