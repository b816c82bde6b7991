"""
Dependency Injection
FastAPI dependencies for the retrieval backend, services, and configurations.
"""

import logging
import uuid
from typing import Optional
from fastapi import Depends, Header, Request

from .config import get_settings, APISettings
from ..ml.embedding import EmbeddingAdapter, get_embedding_adapter
from ..ml.search.flags import FlagSet, flags_from_settings
from ..ml.search.retrieval import RetrievalExecutor, create_client
from ..ml.search.search_service import SearchService
from ..ml.user_modeling.profile_store import ProfileStore, get_profile_store

logger = logging.getLogger(__name__)

# Retrieval executor (one Elasticsearch client per process)
_executor: Optional[RetrievalExecutor] = None


def get_retrieval_executor() -> RetrievalExecutor:
    """Get retrieval executor (singleton)."""
    global _executor
    if _executor is None:
        settings = get_settings()
        client = create_client(
            settings.elasticsearch_node, request_timeout=settings.elasticsearch_request_timeout
        )
        _executor = RetrievalExecutor(client, index=settings.elasticsearch_index)
    return _executor


def reset_retrieval_executor() -> None:
    """Reset retrieval executor (useful for testing)."""
    global _executor
    _executor = None


def get_flag_defaults(settings: APISettings = Depends(get_settings)) -> FlagSet:
    """Process-wide feature flag defaults."""
    return flags_from_settings(settings)


def get_profiles() -> ProfileStore:
    """Get the published profile store."""
    return get_profile_store()


def get_embeddings() -> EmbeddingAdapter:
    """Get the query embedding adapter."""
    return get_embedding_adapter()


def get_search_service(
    defaults: FlagSet = Depends(get_flag_defaults),
    profile_store: ProfileStore = Depends(get_profiles),
    embedding_adapter: EmbeddingAdapter = Depends(get_embeddings),
    executor: RetrievalExecutor = Depends(get_retrieval_executor),
) -> SearchService:
    """
    Get search service instance.

    Use as FastAPI dependency:
        @app.post("/search")
        def search(service: SearchService = Depends(get_search_service)):
            ...
    """
    return SearchService(
        defaults=defaults,
        profile_store=profile_store,
        embedding_adapter=embedding_adapter,
        executor=executor,
    )


def get_request_id(request: Request, x_request_id: Optional[str] = Header(None)) -> str:
    """
    Get the request ID for tracing.

    Returns the id assigned by the request logging middleware, so handler logs
    carry the same id as the X-Request-ID response header. Without the
    middleware, falls back to the header or a fresh id.

    Use as FastAPI dependency:
        @app.get("/endpoint")
        def endpoint(request_id: str = Depends(get_request_id)):
            ...
    """
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id

    if x_request_id:
        return x_request_id

    return str(uuid.uuid4())
