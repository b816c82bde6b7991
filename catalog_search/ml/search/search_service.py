"""
Search Service
Orchestrates one search request: flags, embedding, compilation, paging,
retrieval and response assembly.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..embedding import EmbeddingAdapter
from ..user_modeling.profile_store import ProfileStore
from .errors import SearchDisabledError
from .flags import FlagOverrides, FlagSet, SearchStrategy, resolve
from .pagination import DEFAULT_PAGE_SIZE, build_pagination, next_cursor, resolve_page
from .query_compiler import CompiledQuery, SearchFilters, UserIdentity, compile_query
from .retrieval import RetrievalExecutor, RetrievalResult

logger = logging.getLogger(__name__)


@dataclass
class SearchRequest:
    """Core search request, independent of the HTTP layer."""

    query: str = ""
    user_id: Optional[str] = None
    user_type: Optional[str] = None
    filters: SearchFilters = field(default_factory=SearchFilters)
    size: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    search_after: Optional[List[Any]] = None
    overrides: Optional[FlagOverrides] = None


@dataclass
class SearchResult:
    """Search response payload."""

    query: str
    total: int
    total_relation: str
    results: List[Dict[str, Any]]
    took_ms: int
    pagination: Dict[str, Any]
    used_embedding: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "total": {"value": self.total, "relation": self.total_relation},
            "results": self.results,
            "took_ms": self.took_ms,
            "pagination": self.pagination,
        }


class SearchService:
    """
    Unified search entry point.

    Every dependency is injected: the process-wide flag defaults, the profile
    store, the embedding adapter and the retrieval executor.

    Usage:
        service = SearchService(defaults, store, adapter, executor)
        result = service.search(SearchRequest(query="nitrile gloves", user_id="u-1"))
    """

    def __init__(
        self,
        defaults: FlagSet,
        profile_store: ProfileStore,
        embedding_adapter: EmbeddingAdapter,
        executor: RetrievalExecutor,
    ):
        self.defaults = defaults
        self.profile_store = profile_store
        self.embedding_adapter = embedding_adapter
        self.executor = executor

    def search(self, request: SearchRequest) -> SearchResult:
        """
        Execute one search.

        Args:
            request: SearchRequest

        Returns:
            SearchResult

        Raises:
            SearchDisabledError: If search is disabled process-wide
            InvalidSearchRequestError: If size, offset or cursor are invalid
            RetrievalError: If Elasticsearch fails
        """
        if not self.defaults.search_enabled:
            raise SearchDisabledError()

        start_time = time.time()

        # Validate paging before doing any work
        page = resolve_page(request.size, request.offset, request.search_after)

        flags = resolve(self.defaults, request.overrides)
        query_vector = self._embed_query(request.query, flags)

        compiled = self.compile(request, flags, query_vector)
        if request.user_id:
            logger.debug(f"Personalization query: {compiled.to_json()}")

        result = self.executor.execute(compiled, page)
        cursor = next_cursor(result.sort_keys, page.size)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Search '{request.query}' returned {len(result.hits)}/{result.total} hits "
            f"in {elapsed_ms:.1f}ms (strategy={flags.strategy.value}, "
            f"semantic={query_vector is not None})"
        )

        return self._build_result(request, result, page, cursor, query_vector is not None)

    def compile(
        self,
        request: SearchRequest,
        flags: FlagSet,
        query_vector: Optional[List[float]] = None,
    ) -> CompiledQuery:
        """Compile a request against the currently published profile snapshot."""
        return compile_query(
            request.query,
            request.filters,
            UserIdentity(user_id=request.user_id, user_type=request.user_type),
            self.profile_store.current,
            flags,
            query_vector,
        )

    def _embed_query(self, query: str, flags: FlagSet) -> Optional[List[float]]:
        if not flags.wants_embedding or not (query or "").strip():
            return None

        vector = self.embedding_adapter.embed(query)
        if vector is None:
            if flags.strategy == SearchStrategy.SEMANTIC_ONLY:
                logger.warning(
                    "Semantic-only search requested but embeddings are not available, "
                    "falling back to keyword"
                )
            else:
                logger.warning("Hybrid search requested but embeddings are not available")

        return vector

    def _build_result(
        self,
        request: SearchRequest,
        result: RetrievalResult,
        page,
        cursor: Optional[List[Any]],
        used_embedding: bool,
    ) -> SearchResult:
        return SearchResult(
            query=request.query,
            total=result.total,
            total_relation=result.total_relation,
            results=[hit.to_dict() for hit in result.hits],
            took_ms=result.took_ms,
            pagination=build_pagination(page, result.total, cursor),
            used_embedding=used_embedding,
        )
