"""
Search Endpoints
POST /search - Hybrid, personalized product search.
POST /search/suggestions - Title suggestions for a partial query.
GET /search/product/{id} - Single product lookup.
GET /search/stats - Catalog statistics.
"""

import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, status

from ..dependencies import get_retrieval_executor, get_search_service, get_request_id
from ..errors import ResourceNotFoundError, RetrievalFailedError
from ..models.search import SearchRequest, SearchResponse, SuggestionsRequest, Suggestion
from ...ml.search.errors import RetrievalError
from ...ml.search.retrieval import RetrievalExecutor
from ...ml.search.search_service import SearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


@router.post("/search", response_model=SearchResponse, status_code=status.HTTP_200_OK)
def search(
    request: SearchRequest,
    search_service: SearchService = Depends(get_search_service),
    request_id: str = Depends(get_request_id),
) -> SearchResponse:
    """
    Search for products.

    Workflow:
    1. Reject immediately if search is disabled (503)
    2. Resolve feature flags (request overrides on top of defaults)
    3. Embed the query when the strategy needs a vector
    4. Compile the scored query against the current profile snapshot
    5. Execute against Elasticsearch and build pagination

    Args:
        request: Search request with query, identity, filters and paging
        search_service: Search service instance
        request_id: Request ID for tracing

    Returns:
        Search response with ranked results and pagination
    """
    logger.info(
        f"Search query: '{request.query}'"
        + (f" (user: {request.user_id})" if request.user_id else ""),
        extra={"request_id": request_id},
    )

    result = search_service.search(request.to_core())
    if not result.used_embedding and request.query.strip():
        logger.debug("Search served without a query embedding", extra={"request_id": request_id})
    return SearchResponse(**result.to_dict())


@router.post("/search/suggestions", response_model=List[Suggestion])
def suggestions(
    request: SuggestionsRequest,
    executor: RetrievalExecutor = Depends(get_retrieval_executor),
) -> List[Dict[str, Any]]:
    """Title suggestions for a partial query. Backend errors yield an empty list."""
    return executor.suggest(request.query, size=request.size)


@router.get("/search/product/{product_id}")
def get_product(
    product_id: str,
    executor: RetrievalExecutor = Depends(get_retrieval_executor),
) -> Dict[str, Any]:
    """Fetch one product by id."""
    product = executor.get_product(product_id)
    if product is None:
        raise ResourceNotFoundError("Product", product_id)
    return product


@router.get("/search/stats")
def get_stats(executor: RetrievalExecutor = Depends(get_retrieval_executor)) -> Dict[str, Any]:
    """Catalog statistics (product count plus vendor/category/stock/rating aggregations)."""
    try:
        return executor.catalog_stats()
    except RetrievalError as e:
        raise RetrievalFailedError("Failed to get stats", details=e.details)
