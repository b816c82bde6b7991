"""
Health Check Endpoints
Endpoints for health checks and status monitoring.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any
from fastapi import APIRouter, Depends, status

from ..config import get_settings, APISettings
from ..dependencies import get_flag_defaults, get_profiles, get_retrieval_executor
from ..middleware.timing import get_latency_tracker
from ...ml.model_loader import get_model_registry
from ...ml.search.flags import FlagSet, resolve
from ...ml.search.retrieval import RetrievalExecutor
from ...ml.user_modeling.profile_store import ProfileStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check(
    settings: APISettings = Depends(get_settings),
    executor: RetrievalExecutor = Depends(get_retrieval_executor),
    defaults: FlagSet = Depends(get_flag_defaults),
    profile_store: ProfileStore = Depends(get_profiles),
) -> Dict[str, Any]:
    """
    Detailed health check.

    Checks status of:
    - Elasticsearch (ping and cluster health)
    - Embedding model
    - Profile snapshot

    Returns:
        Health information with the effective feature flag defaults
    """
    health_info: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.version,
        "components": {},
    }

    # Check Elasticsearch
    cluster = executor.cluster_health()
    reachable = executor.ping()
    health_info["components"]["elasticsearch"] = {
        "status": cluster.get("status", "unknown") if cluster else "unreachable",
        "connected": reachable,
        "index": settings.elasticsearch_index,
    }
    if not reachable:
        health_info["status"] = "degraded"

    # Check embedding model
    registry = get_model_registry()
    health_info["components"]["embeddings"] = {
        "status": "loaded" if registry.is_loaded() else (
            "loading" if registry.is_available() else "unavailable"
        ),
        "model": registry.get_model_info()["model_name"],
    }

    # Check profile snapshot
    snapshot = profile_store.current
    if not profile_store.is_loaded:
        profile_status = "not_loaded"
    elif snapshot.is_empty:
        profile_status = "empty"
    else:
        profile_status = "loaded"
    health_info["components"]["profiles"] = {
        "status": profile_status,
        **snapshot.stats(),
    }

    health_info["feature_flags"] = resolve(defaults).to_dict()

    return health_info


@router.get("/metrics", status_code=status.HTTP_200_OK)
async def get_metrics(settings: APISettings = Depends(get_settings)) -> Dict[str, Any]:
    """
    Get performance metrics.

    Returns:
        Latency statistics and performance metrics
    """
    tracker = get_latency_tracker()
    stats = tracker.get_stats()

    return {
        "requests": {
            "total": stats["count"],
        },
        "latency": {
            "p50_ms": round(stats["p50"], 2),
            "p95_ms": round(stats["p95"], 2),
            "p99_ms": round(stats["p99"], 2),
            "mean_ms": round(stats["mean"], 2),
            "min_ms": round(stats["min"], 2),
            "max_ms": round(stats["max"], 2),
        },
        "target_p95_ms": settings.target_p95_latency_ms,
        "meets_target": stats["p95"] <= settings.target_p95_latency_ms,
        "timestamp": _now(),
    }


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness check.

    Checks if the service is alive and responsive.

    Returns:
        Liveness status
    """
    return {"status": "alive", "timestamp": _now()}
