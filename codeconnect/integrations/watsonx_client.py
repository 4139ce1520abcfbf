"""
IBM watsonx.ai text generation client.
"""

import time
from typing import Any, Optional

import httpx

from codeconnect.core.config import WatsonxSettings
from codeconnect.core.constants import DEFAULT_MODEL
from codeconnect.core.exceptions import ConfigurationError, WatsonxError
from codeconnect.core.logging import get_logger
from codeconnect.integrations.base_client import BaseHTTPClient

logger = get_logger(__name__)

IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"

# Refresh the IAM token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 60


class WatsonxClient(BaseHTTPClient):
    """
    Calls ``/ml/v1/text/generation`` with an IAM bearer token.

    The token is exchanged from the API key on first use and cached until
    shortly before it expires.
    """

    error_class = WatsonxError

    def __init__(
        self,
        config: WatsonxSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config.service_url, timeout=config.timeout, transport=transport)
        self.config = config
        self._token: Optional[str] = None
        self._token_expires_at: float = 0

    @property
    def service_name(self) -> str:
        return "watsonx"

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.project_id)

    async def _get_token(self) -> str:
        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN:
            return self._token

        if not self.is_configured:
            raise ConfigurationError(
                "watsonx not configured",
                details={"required": ["WATSONX_API_KEY", "WATSONX_PROJECT_ID"]},
            )

        response = await self._request_raw(
            "POST",
            self.config.iam_url,
            data={"grant_type": IAM_GRANT_TYPE, "apikey": self.config.api_key},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        self._raise_for_status(response, "iam/token")
        payload = response.json()

        self._token = payload["access_token"]
        expires_in = payload.get("expires_in", 3600)
        self._token_expires_at = payload.get("expiration", time.time() + expires_in)
        logger.debug("IAM token refreshed", expires_in=expires_in)
        return self._token

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        **parameters: Any,
    ) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Input text
            model: Model ID, defaults to the service default model
            **parameters: Overrides for generation parameters
                (``max_new_tokens``, ``min_new_tokens``, ``temperature``, ``top_p``)

        Returns:
            The generated text

        Raises:
            WatsonxError: If the call fails or returns no result
        """
        token = await self._get_token()
        body = {
            "model_id": model or DEFAULT_MODEL,
            "project_id": self.config.project_id,
            "input": prompt,
            "parameters": {
                "decoding_method": "sample",
                "max_new_tokens": self.config.max_new_tokens,
                "temperature": self.config.temperature,
                "top_p": self.config.top_p,
                **parameters,
            },
        }
        data = await self._request(
            "POST",
            "/ml/v1/text/generation",
            params={"version": self.config.version},
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )

        results = (data or {}).get("results") or []
        if not results:
            raise WatsonxError("Empty response from model", {"model": body["model_id"]})
        return results[0].get("generated_text", "")

    async def health_check(self) -> bool:
        return self.is_configured
