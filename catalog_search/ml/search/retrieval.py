"""
Retrieval Executor
Submits compiled queries to Elasticsearch and maps raw hits into ranked
result records. Also serves read-by-id, title suggestions and catalog
statistics.

Transport failures are surfaced as RetrievalError and never retried here.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from .errors import RetrievalError
from .pagination import PageRequest
from .query_compiler import CompiledQuery

logger = logging.getLogger(__name__)

SUGGESTION_FIELDS = ("title^2", "category", "vendor")

# Never returned to callers
SOURCE_EXCLUDES = ("embedding",)


@dataclass(frozen=True)
class RankedHit:
    """One search hit with its score and sort values."""

    id: str
    source: Dict[str, Any]
    score: Optional[float]
    sort_key: Tuple[Any, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {**self.source, "score": self.score, "id": self.id}


@dataclass
class RetrievalResult:
    """Result of one executed search."""

    total: int
    total_relation: str
    hits: List[RankedHit] = field(default_factory=list)
    took_ms: int = 0

    @property
    def sort_keys(self) -> List[Tuple[Any, ...]]:
        return [hit.sort_key for hit in self.hits]


def _body(response: Any) -> Any:
    """Unwrap an ObjectApiResponse into its JSON body."""
    return getattr(response, "body", response)


def _parse_total(raw: Any) -> Tuple[int, str]:
    if isinstance(raw, dict):
        return int(raw.get("value", 0)), raw.get("relation", "eq")
    return int(raw or 0), "eq"


class RetrievalExecutor:
    """
    Thin wrapper over the Elasticsearch client for the products index.

    Usage:
        executor = RetrievalExecutor(Elasticsearch("http://localhost:9200"), "products")
        result = executor.execute(compiled, PageRequest(size=20))
    """

    def __init__(self, client: Elasticsearch, index: str = "products"):
        self.client = client
        self.index = index

    def execute(self, compiled: CompiledQuery, page: PageRequest) -> RetrievalResult:
        """
        Run a compiled query for one page.

        Args:
            compiled: Compiled query
            page: Page selection; a cursor is sent as search_after, else from

        Returns:
            RetrievalResult

        Raises:
            RetrievalError: On connection failure, timeout or backend error
        """
        body = compiled.to_body()
        params: Dict[str, Any] = {
            "index": self.index,
            "query": body["query"],
            "sort": body["sort"],
            "size": page.size,
            "source_excludes": list(SOURCE_EXCLUDES),
        }

        if page.cursor:
            params["search_after"] = list(page.cursor)
            logger.debug(f"Using search_after pagination: {list(page.cursor)}")
        elif page.offset > 0:
            params["from_"] = page.offset
            logger.debug(f"Using from pagination: {page.offset}")

        response = self._call("search", self.client.search, **params)

        hits_block = response["hits"]
        total, relation = _parse_total(hits_block.get("total"))
        hits = [
            RankedHit(
                id=hit["_id"],
                source=hit.get("_source") or {},
                score=hit.get("_score"),
                sort_key=tuple(hit.get("sort") or ()),
            )
            for hit in hits_block.get("hits", [])
        ]

        return RetrievalResult(
            total=total,
            total_relation=relation,
            hits=hits,
            took_ms=int(response.get("took", 0)),
        )

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one product document.

        Returns:
            Document source, or None if the product does not exist

        Raises:
            RetrievalError: On connection failure or backend error
        """
        try:
            response = self.client.get(
                index=self.index, id=product_id, source_excludes=list(SOURCE_EXCLUDES)
            )
        except NotFoundError:
            return None
        except (ApiError, TransportError) as e:
            logger.error(f"Failed to get product {product_id}: {e}")
            raise RetrievalError(
                f"Failed to get product {product_id}", details={"error": str(e)}
            ) from e

        return _body(response).get("_source")

    def suggest(self, prefix: str, size: int = 5) -> List[Dict[str, Any]]:
        """
        Title suggestions for a partial query. Errors yield an empty list.
        """
        try:
            response = self.client.search(
                index=self.index,
                query={
                    "multi_match": {
                        "query": prefix,
                        "fields": list(SUGGESTION_FIELDS),
                        "type": "phrase_prefix",
                    }
                },
                size=size,
                source_includes=["title", "category"],
            )
        except (ApiError, TransportError) as e:
            logger.error(f"Failed to get suggestions: {e}")
            return []

        response = _body(response)
        return [
            {
                "title": hit.get("_source", {}).get("title"),
                "category": hit.get("_source", {}).get("category"),
                "id": hit["_id"],
            }
            for hit in response["hits"]["hits"]
        ]

    def catalog_stats(self) -> Dict[str, Any]:
        """
        Catalog-level statistics: product count plus vendor, category,
        inventory status and rating aggregations.
        """
        count = self._call("count", self.client.count, index=self.index)
        response = self._call(
            "stats",
            self.client.search,
            index=self.index,
            size=0,
            aggs={
                "vendors": {"terms": {"field": "vendor.keyword", "size": 10}},
                "categories": {"terms": {"field": "normalized_category", "size": 20}},
                "inventory_status": {"terms": {"field": "inventory_status"}},
                "avg_rating": {"avg": {"field": "supplier_rating"}},
            },
        )

        return {
            "total_products": count["count"],
            "aggregations": response.get("aggregations", {}),
        }

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (ApiError, TransportError) as e:
            logger.warning(f"Elasticsearch ping failed: {e}")
            return False

    def cluster_health(self) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.cluster.health()
        except (ApiError, TransportError) as e:
            logger.warning(f"Elasticsearch health check failed: {e}")
            return None
        return dict(_body(response))

    def _call(self, operation: str, method, **params) -> Any:
        try:
            return _body(method(**params))
        except (ApiError, TransportError) as e:
            logger.error(f"Elasticsearch {operation} failed: {e}")
            raise RetrievalError(
                f"Retrieval backend {operation} failed", details={"error": str(e)}
            ) from e


def create_client(node: str, request_timeout: float = 60.0) -> Elasticsearch:
    """Create the Elasticsearch client for the configured node."""
    logger.info(f"Connecting to Elasticsearch at {node}")
    return Elasticsearch(node, request_timeout=request_timeout)
