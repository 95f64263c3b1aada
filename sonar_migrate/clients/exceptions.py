"""Errors raised by the SonarQube, SonarCloud and enterprise API clients.

SonarQube and SonarCloud report failures as ``{"errors": [{"msg": ...}]}``; the
enterprise API answers ``{"message": ...}``. Both shapes are parsed into
:attr:`APIError.error_messages`, so callers can react to a specific server
message without re-reading the response body.
"""

from typing import Any

RESPONSE_PREVIEW_LENGTH = 200


def parse_error_messages(body: Any) -> list[str]:
    """Extract the server-reported messages from a decoded error body."""
    if not isinstance(body, dict):
        return []
    errors = body.get("errors")
    if isinstance(errors, list):
        messages = [str(e.get("msg") or "") for e in errors if isinstance(e, dict)]
        return [m for m in messages if m]
    message = body.get("message")
    return [str(message)] if message else []


class APIError(Exception):
    """A failed call to a Sonar Web API endpoint."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        error_messages: list[str] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Summary including the server messages, if any.
            status_code: HTTP status code if a response was received.
            response_text: Raw response body.
            error_messages: Messages parsed from the body's ``errors`` list.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text
        self.error_messages = list(error_messages or [])

    def mentions(self, text: str) -> bool:
        """Whether any server-reported message contains ``text``, ignoring case."""
        needle = text.lower()
        return any(needle in m.lower() for m in self.error_messages)

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        # The parsed messages already carry the body when there are any
        if self.response_text and not self.error_messages:
            preview = self.response_text[:RESPONSE_PREVIEW_LENGTH]
            if len(self.response_text) > RESPONSE_PREVIEW_LENGTH:
                preview += "..."
            parts.append(f"Response: {preview}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    """Token missing, expired or revoked (401)."""


class AuthorizationError(APIError):
    """Token lacks the permission the endpoint needs (403)."""


class RateLimitError(APIError):
    """Too many requests (429); ``retry_after`` holds the server's hint in seconds."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        error_messages: list[str] | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, status_code, response_text, error_messages)
        self.retry_after = retry_after


class ClientError(APIError):
    """Request rejected by the server (4xx), e.g. a name that already exists."""


class ResourceNotFoundError(ClientError):
    """Unknown project, gate, profile or endpoint (404).

    Also what older SonarQube editions answer for APIs they do not ship, such as
    portfolios.
    """


class ConflictError(ClientError):
    """Conflicting state on the server (409)."""


class ServerError(APIError):
    """Server-side failure (5xx); retried by the client."""


class NetworkError(APIError):
    """No response received; retried by the client."""


STATUS_ERRORS: dict[int, tuple[type[APIError], str]] = {
    401: (AuthenticationError, "Authentication failed"),
    403: (AuthorizationError, "Authorization failed"),
    404: (ResourceNotFoundError, "Not found"),
    409: (ConflictError, "Conflict"),
}


def error_for_status(
    status_code: int,
    error_messages: list[str],
    response_text: str | None = None,
    retry_after: int | None = None,
) -> APIError:
    """Build the exception matching an HTTP error status.

    Args:
        status_code: HTTP status of the failed response.
        error_messages: Messages parsed with :func:`parse_error_messages`.
        response_text: Raw response body.
        retry_after: ``Retry-After`` header value, used for 429 only.

    Returns:
        The most specific :class:`APIError` subclass for the status.
    """
    detail = "; ".join(error_messages)
    suffix = f": {detail}" if detail else ""
    kwargs: dict[str, Any] = {
        "status_code": status_code,
        "response_text": response_text,
        "error_messages": error_messages,
    }

    if status_code in STATUS_ERRORS:
        error_class, summary = STATUS_ERRORS[status_code]
        return error_class(f"{summary}{suffix}", **kwargs)
    if status_code == 429:
        return RateLimitError(
            f"Rate limit exceeded{suffix}", retry_after=retry_after, **kwargs
        )
    if 400 <= status_code < 500:
        return ClientError(f"Client error {status_code}{suffix}", **kwargs)
    if 500 <= status_code < 600:
        return ServerError(f"Server error {status_code}{suffix}", **kwargs)
    return APIError(f"Unexpected status code: {status_code}{suffix}", **kwargs)


class MigrationError(Exception):
    """Raised when a fatal step aborts the migration run."""
