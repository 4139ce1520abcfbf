"""
Base HTTP client for outbound integrations.
Provides the shared httpx client, retries and error mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from codeconnect.core.exceptions import ExternalServiceError, RateLimitError
from codeconnect.core.logging import get_logger

logger = get_logger(__name__)


class BaseHTTPClient(ABC):
    """
    Abstract base class for integration clients.

    Subclasses set ``error_class`` to the ExternalServiceError subclass raised
    on failures and may override ``_default_headers``.
    """

    error_class: type[ExternalServiceError] = ExternalServiceError

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the remote API
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Name used in logs."""
        ...

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self._default_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _error(self, message: str, **details: Any) -> ExternalServiceError:
        if self.error_class is ExternalServiceError:
            return ExternalServiceError(self.service_name, message, details)
        return self.error_class(message, details)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        return await client.request(method, endpoint, **kwargs)

    async def _request_raw(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request and return the response whatever its status.

        Raises:
            ExternalServiceError: If the request cannot be sent
        """
        try:
            return await self._send(method, endpoint, **kwargs)
        except httpx.RequestError as e:
            logger.error(
                "Integration request error",
                service=self.service_name,
                endpoint=endpoint,
                error=str(e),
            )
            raise self._error(f"Request failed: {e}", endpoint=endpoint) from e

    def _raise_for_status(self, response: httpx.Response, endpoint: str) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(
                "Integration request failed",
                service=self.service_name,
                endpoint=endpoint,
                status_code=status,
                response_text=e.response.text[:500],
            )
            if status == 429:
                retry_after = e.response.headers.get("Retry-After")
                raise RateLimitError(
                    f"{self.service_name} rate limit exceeded",
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                ) from e
            raise self._error(
                f"HTTP {status}: {e.response.text[:500]}",
                endpoint=endpoint,
                status_code=status,
            ) from e

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Make a request and decode the JSON body.

        Raises:
            ExternalServiceError: On transport failure or non-2xx status
        """
        response = await self._request_raw(method, endpoint, **kwargs)
        self._raise_for_status(response, endpoint)
        if not response.content:
            return None
        return response.json()

    async def _get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Make a GET request."""
        return await self._request("GET", endpoint, params=params)

    async def _post(self, endpoint: str, data: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        """Make a POST request with a JSON body."""
        return await self._request("POST", endpoint, json=data, **kwargs)

    async def __aenter__(self) -> "BaseHTTPClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
