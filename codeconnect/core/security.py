"""
Identifier generation and shared-secret verification.
"""

import hashlib
import hmac
import re
import secrets
import uuid
from typing import Optional

from codeconnect.core.config import settings
from codeconnect.core.exceptions import AuthenticationError

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def generate_message_id() -> str:
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """
    Generate a unique request ID for tracing.

    Returns:
        A random 8-byte hex string prefixed with 'req_'
    """
    return f"req_{secrets.token_hex(8)}"


def generate_object_id() -> str:
    """Generate a 24-hex-digit identifier compatible with MongoDB ObjectId strings."""
    return secrets.token_hex(12)


def is_valid_object_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_OBJECT_ID_RE.match(value))


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key.

    Args:
        api_key: The API key to hash

    Returns:
        SHA-256 hex digest of the key
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def verify_api_key(provided_key: Optional[str], expected_key: Optional[str] = None) -> bool:
    """
    Compare a client-provided key with the configured shared secret.

    When no secret is configured every request passes.

    Raises:
        AuthenticationError: If a secret is configured and the key does not match
    """
    expected = settings.security.api_key if expected_key is None else expected_key
    if not expected:
        return True
    if not provided_key:
        raise AuthenticationError("Missing API key")
    if not hmac.compare_digest(hash_api_key(provided_key), hash_api_key(expected)):
        raise AuthenticationError("Invalid API key")
    return True
