"""
Exception hierarchy for ISC-CodeConnect.
Every error carries an API error code and the HTTP status it maps to.
"""

from typing import Any, Optional


class CodeConnectError(Exception):
    """Base exception for all CodeConnect errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(CodeConnectError):
    """An integration is missing required configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


# =============================================================================
# Client Errors (4xx)
# =============================================================================


class ValidationError(CodeConnectError):
    """Request validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class AuthenticationError(CodeConnectError):
    """No authenticated user on the request."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(
            message=message,
            code="AUTHENTICATION_REQUIRED",
            status_code=401,
        )


class AuthorizationError(CodeConnectError):
    """User is authenticated but not allowed to touch the resource."""

    def __init__(self, message: str = "Forbidden", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="AUTHORIZATION_FAILED",
            details=details,
            status_code=403,
        )


class NotFoundError(CodeConnectError):
    """Requested resource does not exist."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code="NOT_FOUND",
            details={"resource": resource, "id": identifier},
            status_code=404,
        )


class ChatNotFoundError(NotFoundError):
    def __init__(self, chat_id: str) -> None:
        super().__init__("Chat", chat_id)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str) -> None:
        super().__init__("User", user_id)


class FeedbackNotFoundError(NotFoundError):
    def __init__(self, feedback_id: str) -> None:
        super().__init__("Feedback", feedback_id)


class JiraIssueNotFoundError(NotFoundError):
    def __init__(self, issue_key: str) -> None:
        super().__init__("Jira issue", issue_key)


# =============================================================================
# External Service Errors (502)
# =============================================================================


class ExternalServiceError(CodeConnectError):
    """An upstream service failed or returned an error."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            message=f"{service} error: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service, **(details or {})},
            status_code=status_code,
        )
        self.service = service


class JiraError(ExternalServiceError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("Jira", message, details)


class GitHubError(ExternalServiceError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("GitHub", message, details)


class WatsonxError(ExternalServiceError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("watsonx", message, details)


class ChatBackendError(ExternalServiceError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("Chat backend", message, details)


class DatabaseError(ExternalServiceError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("MongoDB", message, details, status_code=500)


# =============================================================================
# Other Errors
# =============================================================================


class RateLimitError(CodeConnectError):
    """Upstream rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            details={"retry_after": retry_after} if retry_after else {},
            status_code=429,
        )
