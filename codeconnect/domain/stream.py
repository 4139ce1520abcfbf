"""
Client-bound chat stream events.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from codeconnect.core.constants import StreamEventType


@dataclass
class StreamEvent:
    """One event sent to the browser over the query stream."""

    type: StreamEventType
    content: str = ""
    done: bool = False
    details: Optional[dict[str, Any]] = None
    code_metadata: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_progress(self) -> bool:
        return self.type == StreamEventType.PROGRESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape the front-end reads."""
        result: dict[str, Any] = {
            "content": self.content,
            "type": self.type.value,
            "done": self.done,
        }
        if self.details is not None:
            result["details"] = self.details
        if self.code_metadata is not None:
            result["codeMetadata"] = self.code_metadata
        if self.error is not None:
            result["error"] = self.error
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
