"""
Search Models
Pydantic models for search endpoints.

Request models are closed: unknown fields are rejected. Both snake_case names
and the camelCase aliases used by the storefront client are accepted.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from ...ml.search.flags import FlagOverrides, SearchStrategy
from ...ml.search.query_compiler import SearchFilters
from ...ml.search.search_service import SearchRequest as CoreSearchRequest


class _ClosedModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class SearchFiltersModel(_ClosedModel):
    """Non-scoring filters applied to the result set."""

    category: Optional[str] = Field(None, description="Category (analyzed match)")
    vendor: Optional[str] = Field(None, description="Exact vendor name")
    region: Optional[str] = Field(None, description="Region the product must ship to")
    min_rating: Optional[float] = Field(
        None, ge=0, le=5, alias="minRating", description="Minimum supplier rating (0-5)"
    )
    inventory_status: Optional[str] = Field(
        None, alias="inventoryStatus", description="Exact inventory status, e.g. in_stock"
    )

    def to_filters(self) -> SearchFilters:
        return SearchFilters(
            category=self.category,
            vendor=self.vendor,
            region=self.region,
            min_rating=self.min_rating,
            inventory_status=self.inventory_status,
        )


class FeatureFlagsModel(_ClosedModel):
    """
    Per-request feature flag overrides.

    Omitted fields inherit the process-wide defaults. Search itself cannot be
    enabled from a request.
    """

    search_strategy: Optional[SearchStrategy] = Field(None, alias="searchStrategy")
    hybrid_search_enabled: Optional[bool] = Field(None, alias="hybridSearchEnabled")
    personalization_enabled: Optional[bool] = Field(None, alias="personalizationEnabled")
    fuzzy_matching_enabled: Optional[bool] = Field(None, alias="fuzzyMatchingEnabled")
    synonym_expansion_enabled: Optional[bool] = Field(None, alias="synonymExpansionEnabled")


class SearchRequest(_ClosedModel):
    """
    Search request model.

    Supports text search with optional personalization, filters and either
    offset or cursor pagination.
    """

    query: str = Field(default="", max_length=500, description="Search query text (may be empty)")

    # Identity (optional, for personalization)
    user_id: Optional[str] = Field(None, alias="userId", description="User ID")
    user_type: Optional[str] = Field(
        None, alias="userType", description="Buyer type, used when the user has no profile"
    )

    filters: Optional[SearchFiltersModel] = Field(None, description="Product filters")

    # Pagination
    size: int = Field(default=20, ge=1, le=100, description="Page size")
    from_: int = Field(default=0, ge=0, alias="from", description="Offset (ignored with a cursor)")
    search_after: Optional[List[Any]] = Field(
        None, alias="searchAfter", description="Cursor from the previous page's next_cursor"
    )

    # Legacy switch, superseded by feature_flags
    use_hybrid_search: Optional[bool] = Field(None, alias="useHybridSearch")

    feature_flags: Optional[FeatureFlagsModel] = Field(None, alias="featureFlags")

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "query": "nitrile gloves",
                "userId": "user_136",
                "filters": {"category": "Safety > Gloves", "minRating": 4.0},
                "size": 20,
                "from": 0,
            }
        },
    )

    def to_overrides(self) -> FlagOverrides:
        flags = self.feature_flags or FeatureFlagsModel()
        hybrid = flags.hybrid_search_enabled
        if hybrid is None:
            hybrid = self.use_hybrid_search

        return FlagOverrides(
            strategy=flags.search_strategy,
            hybrid_enabled=hybrid,
            personalization_enabled=flags.personalization_enabled,
            fuzzy_enabled=flags.fuzzy_matching_enabled,
            synonym_enabled=flags.synonym_expansion_enabled,
        )

    def to_core(self) -> CoreSearchRequest:
        return CoreSearchRequest(
            query=self.query,
            user_id=self.user_id,
            user_type=self.user_type,
            filters=self.filters.to_filters() if self.filters else SearchFilters(),
            size=self.size,
            offset=self.from_,
            search_after=self.search_after,
            overrides=self.to_overrides(),
        )


class SuggestionsRequest(_ClosedModel):
    """Suggestions request model."""

    query: str = Field(..., description="Partial query")
    size: int = Field(default=5, ge=1, le=20, description="Number of suggestions")


class TotalHits(BaseModel):
    """Total match count; relation is 'gte' when the count is a lower bound."""

    value: int
    relation: str = "eq"


class SearchResponse(BaseModel):
    """Search response model."""

    query: str = Field(..., description="Original search query")
    total: TotalHits
    results: List[Dict[str, Any]] = Field(..., description="Ranked products with score and id")
    took_ms: int = Field(..., description="Elasticsearch time in milliseconds")
    pagination: Dict[str, Any] = Field(
        ...,
        description="size plus either from/total_pages or next_cursor/has_more",
    )


class Suggestion(BaseModel):
    id: str
    title: Optional[str] = None
    category: Optional[str] = None
