"""
Search Module
Feature flags, query compilation, pagination, retrieval and the search service.
"""

from .errors import (
    SearchServiceError,
    SearchDisabledError,
    RetrievalError,
    InvalidSearchRequestError,
    InvalidCursorError,
)
from .flags import FlagSet, FlagOverrides, SearchStrategy, resolve, flags_from_settings
from .pagination import PageRequest, resolve_page, validate_cursor, next_cursor, build_pagination
from .query_compiler import (
    CompiledQuery,
    ScoredClause,
    SearchFilters,
    UserIdentity,
    compile_query,
)
from .retrieval import RankedHit, RetrievalExecutor, RetrievalResult
from .search_service import SearchService, SearchRequest, SearchResult

__all__ = [
    # Errors
    "SearchServiceError",
    "SearchDisabledError",
    "RetrievalError",
    "InvalidSearchRequestError",
    "InvalidCursorError",
    # Flags
    "FlagSet",
    "FlagOverrides",
    "SearchStrategy",
    "resolve",
    "flags_from_settings",
    # Pagination
    "PageRequest",
    "resolve_page",
    "validate_cursor",
    "next_cursor",
    "build_pagination",
    # Compiler
    "CompiledQuery",
    "ScoredClause",
    "SearchFilters",
    "UserIdentity",
    "compile_query",
    # Retrieval
    "RankedHit",
    "RetrievalExecutor",
    "RetrievalResult",
    # Service
    "SearchService",
    "SearchRequest",
    "SearchResult",
]
