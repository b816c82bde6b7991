"""
Search Errors
Exceptions raised by the ranking core and retrieval layer.
"""

from typing import Optional


class SearchServiceError(Exception):
    """Base exception for search service errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class SearchDisabledError(SearchServiceError):
    """Search is globally disabled via the SEARCH_ENABLED flag. Not retryable."""

    code = "SEARCH_DISABLED"

    def __init__(self, message: str = "Search functionality is currently disabled"):
        super().__init__(message, details={"code": self.code})


class RetrievalError(SearchServiceError):
    """Retrieval backend timed out or could not be reached."""

    code = "RETRIEVAL_FAILED"


class InvalidSearchRequestError(SearchServiceError, ValueError):
    """Request rejected before compilation."""

    code = "INVALID_REQUEST"


class InvalidCursorError(InvalidSearchRequestError):
    """Pagination cursor is not an ordered list of primitive sort values."""

    code = "INVALID_CURSOR"
