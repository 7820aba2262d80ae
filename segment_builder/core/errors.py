"""
Domain-specific exceptions for the Segment Builder.

These exceptions represent boundary failures and are mapped to appropriate
HTTP status codes in the API layer. Validation of a filter tree is *not*
reported through exceptions: the validator returns its findings as data.
"""

from typing import Any


class SegmentBuilderError(Exception):
    """Base exception for all segment builder errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(SegmentBuilderError):
    """
    Raised when a filter tree is used where a valid one is required.

    Examples:
    - Building a save payload from an incomplete filter
    - Requesting a preview for a filter without conditions

    HTTP Status: 400 Bad Request
    """

    pass


class NotFoundError(SegmentBuilderError):
    """
    Raised when a requested resource does not exist.

    Examples:
    - Dimension key not in the catalog

    HTTP Status: 404 Not Found
    """

    pass


class WireFormatError(SegmentBuilderError):
    """
    Raised when wire-format input cannot be turned into a filter tree.

    Examples:
    - Entry that is neither a triple nor a group object
    - Unrecognized wire operator
    - Single-value operator with several clauses

    HTTP Status: 422 Unprocessable Entity
    """

    pass


class PreviewError(SegmentBuilderError):
    """
    Raised when the external visitor-count endpoint fails.

    Examples:
    - Non-2xx response
    - Response body without a numeric matching_count
    - Network timeout

    HTTP Status: 502 Bad Gateway
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    NotFoundError: 404,
    WireFormatError: 422,
    PreviewError: 502,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
