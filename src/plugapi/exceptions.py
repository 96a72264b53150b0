"""Custom exceptions for plugapi."""

from __future__ import annotations


class PlugError(Exception):
    """Base exception for all plugapi errors."""

    pass


class TransportError(PlugError):
    """Base exception for transport-related errors."""

    pass


class AuthenticationError(TransportError):
    """Raised when no valid token is available or the API rejects it (401/403)."""

    pass


class APIError(TransportError):
    """Raised for other non-success API responses."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"API error {status_code}: {message}")


class UnexpectedContentTypeError(TransportError):
    """Raised when a response carries a content type we cannot decode."""

    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(f"Unexpected content type: {content_type or '<none>'}")


class QueryTemplateError(PlugError, ValueError):
    """Raised when a SQL template cannot be rendered with the given values."""

    pass
