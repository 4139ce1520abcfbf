"""
Pytest configuration and fixtures.
"""

import json
from typing import Any, AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from codeconnect.api.deps import container
from codeconnect.core.constants import UserRole
from codeconnect.main import app


def sse(payload: dict[str, Any], event: Optional[str] = None) -> bytes:
    """Encode one backend event the way the chat backend frames it."""
    frame = f"event: {event}\n" if event else ""
    return f"{frame}data: {json.dumps(payload)}\n\n".encode()


def parse_frames(body: str) -> list[dict[str, Any]]:
    """Decode the ``data:`` frames of a client-bound event stream."""
    return [
        json.loads(line[len("data: "):])
        for line in body.split("\n")
        if line.startswith("data: ")
    ]


class FakeChatBackend:
    """Stands in for the chat backend: replays canned SSE chunks."""

    def __init__(self, chunks: Optional[list[bytes]] = None, error: Optional[Exception] = None) -> None:
        self.chunks = list(chunks or [])
        self.error = error
        self.queries: list[dict[str, Any]] = []
        self.resets: list[dict[str, str]] = []

    async def stream_query(self, query: str, chat_id: str, user: str, model: Optional[str] = None):
        self.queries.append({"query": query, "chat_id": chat_id, "user": user, "model": model})
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def reset_chat(self, chat_id: str, user: str) -> dict[str, Any]:
        self.resets.append({"chat_id": chat_id, "user": user})
        return {"status": "reset", "chat_id": chat_id}

    async def new_chat(self, user: str) -> dict[str, Any]:
        return {"status": "created", "user": user}

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


DEFAULT_CHUNKS = [
    sse({"content": "Searching the codebase", "details": {"step": 1}}, event="progress"),
    sse({"content": "Hello "}) + sse({"content": "world"}),
    sse({"done": True}),
]


@pytest.fixture
def backend() -> FakeChatBackend:
    return FakeChatBackend(DEFAULT_CHUNKS)


@pytest.fixture(autouse=True)
async def fresh_container(backend: FakeChatBackend) -> AsyncGenerator[None, None]:
    """Rebuild the service container on in-memory storage for every test."""
    container.reset()
    container.initialize(in_memory=True)
    container._backend_client = backend
    container.chat_service.backend = backend
    yield
    await container.chat_service.wait_for_background()
    container.reset()


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-User-Email": "dana.dev@example.com", "X-User-Name": "Dana Dev"}


@pytest.fixture
def other_headers() -> dict[str, str]:
    return {"X-User-Email": "sam.reviewer@example.com", "X-User-Name": "Sam Reviewer"}


@pytest.fixture
async def admin_headers() -> dict[str, str]:
    """Headers of a user promoted to admin."""
    user = await container.users.get_or_create("ada.admin@example.com", "Ada Admin")
    await container.users.update_role(user.id, UserRole.ADMIN)
    return {"X-User-Email": "ada.admin@example.com", "X-User-Name": "Ada Admin"}


@pytest.fixture
def sample_chat_id() -> str:
    """Sample client-generated chat ID for testing."""
    return "2f1c7a0e-9b7d-4a51-8f0e-3c2d1b0a9e8f"
