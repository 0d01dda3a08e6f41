"""
Exceptions for dewatermark client operations.

Provides specialized exceptions for:
- Local configuration problems (raised before any network activity)
- Remote service failures (non-2xx responses)
- Network/connection issues and timeouts
- Unusable success responses

Exception Hierarchy:
- DewatermarkError (base)
  - ConfigurationError
  - ApiError
    - ApiTimeoutError
    - ApiConnectionError
    - ResponseFormatError
"""
from __future__ import annotations

from typing import Any, Optional


class DewatermarkError(Exception):
    """
    Base exception for the dewatermark client.

    Attributes:
        message: Human-readable error message
        details: Additional error details
    """

    error_type: str = "dewatermark_error"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error": self.error_type,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(DewatermarkError):
    """
    Caller supplied an unusable input combination.

    Raised synchronously, before any request is sent.
    """

    error_type: str = "configuration_error"


class ApiError(DewatermarkError):
    """
    Remote call failed at the network layer or returned a non-success status.

    Carries whatever the remote side supplied: HTTP status, status text and
    response body. Transport failures leave those unset and keep the
    underlying exception in ``original_error``.
    """

    error_type: str = "api_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
        response_body: Any = None,
        original_error: Optional[Exception] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """
        Initialize API error.

        Args:
            message: Human-readable error message
            status_code: Remote HTTP status (if a response was received)
            status_text: Remote reason phrase (if a response was received)
            response_body: Parsed JSON body, or raw text when not JSON
            original_error: Exception raised by the HTTP transport
            details: Additional error details
        """
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if original_error is not None:
            details["original_error_type"] = type(original_error).__name__
        super().__init__(message, details=details)
        self.status_code = status_code
        self.status_text = status_text
        self.response_body = response_body
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = super().to_dict()
        if self.status_text:
            result["status_text"] = self.status_text
        if self.response_body is not None:
            result["response_body"] = self.response_body
        return result


class ApiTimeoutError(ApiError):
    """The remote service did not answer within the transport timeout."""

    error_type: str = "api_timeout"


class ApiConnectionError(ApiError):
    """The remote service could not be reached."""

    error_type: str = "api_connection_error"


class ResponseFormatError(ApiError):
    """
    The remote service answered 2xx with a body that cannot be mapped.

    Raised when the body is not JSON or lacks the expected fields.
    """

    error_type: str = "response_format_error"
