"""
Chat title generation with watsonx.
"""

import re
from typing import Optional

from codeconnect.core.constants import TITLE_FALLBACK_LENGTH, TITLE_MAX_LENGTH
from codeconnect.core.exceptions import CodeConnectError
from codeconnect.core.logging import get_logger
from codeconnect.integrations.watsonx_client import WatsonxClient

logger = get_logger(__name__)

TITLE_PROMPT = """Generate a concise, descriptive title (maximum 6 words) for the following user query. The title should capture the main intent or topic.

Important: Return ONLY the title text without any quotes, punctuation marks, or extra formatting.

User query: "{query}"

Title:"""

_LIST_MARKERS = (
    re.compile(r"^\s*-\s*"),
    re.compile(r"^\s*\*\s*"),
    re.compile(r"^\s*\d+\.\s*"),
)
_QUOTES_RE = re.compile("^[\"'“”‘’`´]|[\"'“”‘’`´]$")


def fallback_title(query: str) -> str:
    return query[:TITLE_FALLBACK_LENGTH]


def clean_title(raw: Optional[str], query: str) -> str:
    """
    Normalize a model-generated title.

    Keeps the first line, drops list markers and surrounding quotes, and
    truncates to 60 characters. Empty results fall back to the query prefix.
    """
    title = (raw or "").strip().split("\n", 1)[0]
    for marker in _LIST_MARKERS:
        title = marker.sub("", title, count=1)
    title = title.strip()

    for _ in range(3):
        title = _QUOTES_RE.sub("", title).strip()

    title = title[:TITLE_MAX_LENGTH]
    return title or fallback_title(query)


class TitleGenerator:
    def __init__(self, watsonx: WatsonxClient, model: str) -> None:
        self.watsonx = watsonx
        self.model = model

    async def generate_chat_title(self, query: str) -> str:
        """Generate a short title; never raises, falls back to the query prefix."""
        try:
            raw = await self.watsonx.generate(
                TITLE_PROMPT.format(query=query),
                model=self.model,
                min_new_tokens=50,
            )
        except CodeConnectError as e:
            logger.warning("Title generation failed", error=e.message)
            return fallback_title(query)
        return clean_title(raw, query)
