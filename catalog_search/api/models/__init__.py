"""
Pydantic Models
Request/response models for API endpoints.
"""

from .search import (
    SearchRequest,
    SearchResponse,
    SearchFiltersModel,
    FeatureFlagsModel,
    SuggestionsRequest,
    Suggestion,
    TotalHits,
)

__all__ = [
    "SearchRequest",
    "SearchResponse",
    "SearchFiltersModel",
    "FeatureFlagsModel",
    "SuggestionsRequest",
    "Suggestion",
    "TotalHits",
]
