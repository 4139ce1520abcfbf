"""
Parsing of the chat backend's server-sent event stream.

The backend emits ``event:``/``data:`` line pairs. ``SSEDecoder`` turns raw
chunks into ``(event, payload)`` pairs, ``translate_upstream_event`` maps
them onto client-bound ``StreamEvent`` objects, and ``MessageAssembler``
rebuilds the assistant message the way the browser renders it.
"""

from __future__ import annotations

import codecs
import json
import re
from typing import Any, Optional, Union

from codeconnect.core.constants import (
    ANALYSIS_END_TAGS,
    ANALYSIS_START_TAG,
    DEFAULT_CODE_LANGUAGE,
    StreamEventType,
)
from codeconnect.core.logging import get_logger
from codeconnect.domain.stream import StreamEvent

logger = get_logger(__name__)

_END_TAG_RE = re.compile("|".join(re.escape(tag) for tag in ANALYSIS_END_TAGS))
_SOQL_RE = re.compile(r"^\s*SELECT\s+[\w\s,.()]+\s+FROM\s+\w+", re.IGNORECASE)

UpstreamEvent = tuple[str, dict[str, Any]]


# =============================================================================
# SSE decoding
# =============================================================================


class SSEDecoder:
    """
    Incremental decoder for ``event:``/``data:`` framing.

    Partial lines are buffered across chunks and multi-byte characters split
    between chunks are reassembled. The event name applies to the next data
    line only.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event = ""

    def feed(self, chunk: Union[bytes, str]) -> list[UpstreamEvent]:
        """Consume a chunk and return the complete events it finished."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text

        *lines, self._buffer = self._buffer.split("\n")
        events: list[UpstreamEvent] = []
        for line in lines:
            parsed = self._parse_line(line.rstrip("\r"))
            if parsed is not None:
                events.append(parsed)
        return events

    def flush(self) -> list[UpstreamEvent]:
        """Parse whatever is left in the buffer at end of stream."""
        remaining = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        events: list[UpstreamEvent] = []
        for line in remaining.split("\n"):
            parsed = self._parse_line(line.rstrip("\r"))
            if parsed is not None:
                events.append(parsed)
        return events

    def _parse_line(self, line: str) -> Optional[UpstreamEvent]:
        if line.startswith("event:"):
            self._event = line[len("event:"):].strip()
            return None

        if not line.startswith("data:"):
            return None

        event, self._event = self._event, ""
        raw = line[len("data:"):].strip()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Malformed stream payload", error=str(e), data=raw[:200])
            return None

        if not isinstance(payload, dict):
            logger.warning("Unexpected stream payload type", data=raw[:200])
            return None
        return event, payload


# =============================================================================
# Upstream -> client translation
# =============================================================================


def detect_code_language(code: str, default: str = "text") -> str:
    """Guess the language of a Salesforce-flavoured code snippet."""
    stripped = code.lstrip()

    if stripped.startswith("<?xml"):
        return "xml"
    if "<apex:" in code:
        return "html"
    if (
        "public class" in code
        or "private class" in code
        or "global class" in code
        or "@IsTest" in code
        or "@AuraEnabled" in code
        or "System.assert" in code
        or "trigger " in code
        or "Apex" in code
    ):
        return "apex"
    if ("<template" in code or "<aura:" in code) and "</" in code:
        return "html"
    if _SOQL_RE.match(code):
        return "sql"
    if (
        "function" in code
        or "const " in code
        or "let " in code
        or "import " in code
    ):
        return "javascript"
    if stripped.startswith("<") and "</" in code:
        return "html"
    return default


def format_code_as_markdown(code: str, language: str = DEFAULT_CODE_LANGUAGE) -> str:
    return f"\n```{language}\n{code}\n```\n"


def translate_upstream_event(event: str, payload: dict[str, Any]) -> Optional[StreamEvent]:
    """
    Map one backend event onto a client event.

    Returns:
        A terminal ``done`` event, a progress/code/content event, or None
        for anything the client does not need
    """
    if payload.get("done"):
        return StreamEvent(type=StreamEventType.CONTENT, done=True)

    content = payload.get("content")
    details = payload.get("details") if isinstance(payload.get("details"), dict) else None

    if event == StreamEventType.PROGRESS.value and content:
        return StreamEvent(type=StreamEventType.PROGRESS, content=content, details=details)

    if event == StreamEventType.CODE.value and details and details.get("response"):
        code = details["response"]
        language = payload.get("language") or detect_code_language(code, default=DEFAULT_CODE_LANGUAGE)
        return StreamEvent(
            type=StreamEventType.CODE,
            content=code,
            code_metadata={
                "language": language,
                "filename": payload.get("filename") or "",
                "codeType": payload.get("codeType") or "",
                "metadata": payload.get("metadata") or {},
                "description": details.get("description") or "",
            },
        )

    if not event and content:
        return StreamEvent(type=StreamEventType.CONTENT, content=content)

    return None


def format_sse(event: StreamEvent) -> str:
    """Encode an event as one SSE frame."""
    return f"data: {event.to_json()}\n\n"


# =============================================================================
# Analysis-tag handling and message assembly
# =============================================================================


class AnalysisTagFilter:
    """
    Tracks ``<start analysis>`` ... ``<end analysis>`` sections across chunks.

    Text is passed through unchanged; the filter only decides where an
    analysis section ends so that the tail after an end tag is held back and
    prefixed to the next chunk.
    """

    def __init__(self) -> None:
        self.in_analysis = False
        self.pending = ""

    def reset(self) -> None:
        self.in_analysis = False
        self.pending = ""

    def feed(self, chunk: str) -> str:
        processed = self.pending + chunk
        output = ""

        start = processed.find(ANALYSIS_START_TAG)
        if start != -1 and not self.in_analysis:
            self.in_analysis = True
            output += processed[:start]
            processed = processed[start:]

        end = _END_TAG_RE.search(processed)
        if end is not None and self.in_analysis:
            self.in_analysis = False
            output += processed[: end.end()]
            self.pending = processed[end.end():]
        else:
            output += processed
            self.pending = ""

        if self.in_analysis and processed.strip().endswith(ANALYSIS_END_TAGS):
            self.in_analysis = False

        return output

    def flush(self) -> str:
        remaining, self.pending = self.pending, ""
        return remaining


class MessageAssembler:
    """
    Rebuilds an assistant message from client events.

    Content goes through the analysis filter, code is appended as a fenced
    block and progress events are kept aside.
    """

    def __init__(self) -> None:
        self._filter = AnalysisTagFilter()
        self._parts: list[str] = []
        self.progress: list[StreamEvent] = []
        self.started = False

    @property
    def content(self) -> str:
        return "".join(self._parts)

    @property
    def in_analysis(self) -> bool:
        return self._filter.in_analysis

    def add(self, event: StreamEvent) -> str:
        """Apply an event; returns the text appended to the message."""
        if event.done:
            return ""

        if event.type == StreamEventType.PROGRESS:
            self.progress.append(event)
            return ""

        if event.type == StreamEventType.CODE:
            language = (event.code_metadata or {}).get("language") or DEFAULT_CODE_LANGUAGE
            if language == "text":
                language = detect_code_language(event.content, default=DEFAULT_CODE_LANGUAGE)
            block = format_code_as_markdown(event.content, language)
            text = "\n" + block if self.started else block
        elif event.type == StreamEventType.CONTENT:
            text = self._filter.feed(event.content)
        else:
            return ""

        self._parts.append(text)
        self.started = True
        return text

    def flush(self) -> str:
        text = self._filter.flush()
        if text:
            self._parts.append(text)
        return text
