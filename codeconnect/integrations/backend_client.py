"""
Client for the FastAPI chat backend that produces streamed answers.
"""

from typing import Any, AsyncIterator, Optional

import httpx

from codeconnect.core.config import BackendSettings
from codeconnect.core.exceptions import ChatBackendError
from codeconnect.core.logging import get_logger
from codeconnect.integrations.base_client import BaseHTTPClient

logger = get_logger(__name__)


class ChatBackendClient(BaseHTTPClient):
    """
    Posts queries to the backend's SSE endpoint and relays raw bytes.
    Decoding the event stream is left to the caller.
    """

    error_class = ChatBackendError

    def __init__(
        self,
        config: BackendSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config.url, timeout=config.timeout, transport=transport)
        self.config = config

    @property
    def service_name(self) -> str:
        return "chat_backend"

    async def stream_query(
        self,
        query: str,
        chat_id: str,
        user: str,
        model: Optional[str] = None,
    ) -> AsyncIterator[bytes]:
        """
        Yield response body chunks as they arrive.

        Raises:
            ChatBackendError: If the backend is unreachable or answers non-2xx
        """
        payload: dict[str, Any] = {"query": query, "chat_id": chat_id, "user": user}
        if model:
            payload["model"] = model

        client = await self._get_client()
        try:
            async with client.stream(
                "POST",
                self.config.stream_path,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(
                        "Chat backend returned error",
                        status_code=response.status_code,
                        response_text=body[:500],
                    )
                    raise ChatBackendError(
                        f"HTTP {response.status_code}",
                        {"status_code": response.status_code},
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.RequestError as e:
            logger.error("Chat backend stream failed", chat_id=chat_id, error=str(e))
            raise ChatBackendError(f"Stream failed: {e}") from e

    async def reset_chat(self, chat_id: str, user: str) -> dict[str, Any]:
        return await self._post(self.config.reset_path, {"chat_id": chat_id, "user": user})

    async def new_chat(self, user: str) -> dict[str, Any]:
        return await self._post(self.config.new_chat_path, {"user": user})

    async def health_check(self) -> bool:
        try:
            response = await self._request_raw("GET", "/health")
        except ChatBackendError:
            return False
        return response.status_code == 200
