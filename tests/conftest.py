"""
Pytest configuration and shared fixtures
"""

import pytest
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_search.api.config import reset_settings
from catalog_search.ml.config import reset_config
from catalog_search.ml.model_loader import ModelRegistry
from catalog_search.ml.embedding import reset_embedding_adapter
from catalog_search.ml.search.flags import FlagSet
from catalog_search.ml.user_modeling.profile_builder import build_profiles
from catalog_search.ml.user_modeling.profile_store import ProfileSnapshot, reset_profile_store


@pytest.fixture(autouse=True)
def reset_singletons():
    """Every test starts from fresh settings, config and registries."""
    reset_settings()
    reset_config()
    reset_profile_store()
    reset_embedding_adapter()
    ModelRegistry.reset()
    yield
    reset_settings()
    reset_config()
    reset_profile_store()
    reset_embedding_adapter()
    ModelRegistry.reset()


@pytest.fixture
def catalog() -> Dict[str, Dict[str, Any]]:
    """Small product catalog keyed by product id."""
    return {
        "P1": {
            "title": "Nitrile Gloves",
            "category": "Safety > Gloves",
            "vendor": "Acme Safety",
            "region_availability": ["US-West", "US-East"],
            "supplier_rating": 4.6,
            "inventory_status": "in_stock",
        },
        "P2": {
            "title": "Respirator Mask",
            "category": "Safety > Masks",
            "vendor": "Acme Safety",
            "region_availability": ["US-East"],
            "supplier_rating": 4.4,
            "inventory_status": "in_stock",
        },
        "P3": {
            "title": "Cordless Drill",
            "category": "Tools > Power Tools",
            "vendor": "BuildRight",
            "region_availability": ["EU"],
            "supplier_rating": 3.2,
            "inventory_status": "backorder",
        },
        "P4": {
            "title": "Centrifugal Pump",
            "category": "Industrial > Pumps",
            "vendor": "FlowCo",
            "region_availability": ["US-West"],
            "supplier_rating": 4.1,
            "inventory_status": "in_stock",
        },
    }


@pytest.fixture
def orders() -> List[Dict[str, Any]]:
    """Order history for a safety buyer (u-safety) and a tools buyer (u-tools)."""
    return [
        {
            "user_id": "u-safety",
            "delivery_mode": "express",
            "cart": {
                "items": [
                    {"product_id": "P1", "price": 20.0, "quantity": 10},
                    {"product_id": "P2", "price": 50.0, "quantity": 2},
                ]
            },
        },
        {
            "user_id": "u-safety",
            "delivery_mode": "express",
            "cart": {"items": [{"product_id": "P1", "price": 20.0, "quantity": 5}]},
        },
        {
            "user_id": "u-tools",
            "delivery_mode": "standard",
            "cart": {"items": [{"product_id": "P3", "price": 150.0, "quantity": 1}]},
        },
    ]


@pytest.fixture
def build_result(orders, catalog):
    return build_profiles(orders, catalog)


@pytest.fixture
def snapshot(build_result) -> ProfileSnapshot:
    return ProfileSnapshot.from_build(build_result)


@pytest.fixture
def default_flags() -> FlagSet:
    return FlagSet()


class FakeEncoder:
    """Stands in for a SentenceTransformer model."""

    def __init__(self, dim: int = 384, fail_on: Optional[str] = None):
        self.dim = dim
        self.fail_on = fail_on
        self.calls: List[str] = []

    def encode(self, text, normalize_embeddings=True):
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError("encoder failure")
        vector = np.full(self.dim, 1.0, dtype=np.float32)
        if normalize_embeddings:
            vector = vector / np.linalg.norm(vector)
        return vector


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def model_registry(fake_encoder) -> ModelRegistry:
    """Model registry with the fake encoder installed."""
    registry = ModelRegistry()
    registry.set_embedding_model(fake_encoder)
    return registry


class _FakeCluster:
    def __init__(self, parent):
        self.parent = parent

    def health(self):
        if self.parent.error is not None:
            raise self.parent.error
        return {"status": "green", "number_of_nodes": 1}


class FakeElasticsearch:
    """
    Minimal stand-in for the Elasticsearch client.

    ``search`` serves ``hits`` honoring size, from_ and search_after against
    each hit's sort values, and records every call.
    """

    def __init__(self, hits: Optional[List[Dict[str, Any]]] = None, error: Exception = None):
        self.hits = hits or []
        self.error = error
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.search_calls: List[Dict[str, Any]] = []
        self.cluster = _FakeCluster(self)

    def search(self, **params):
        self.search_calls.append(params)
        if self.error is not None:
            raise self.error

        if "aggs" in params:
            return {
                "took": 1,
                "hits": {"total": {"value": len(self.hits), "relation": "eq"}, "hits": []},
                "aggregations": {"avg_rating": {"value": 4.2}},
            }

        hits = list(self.hits)
        if params.get("search_after") is not None:
            cursor = list(params["search_after"])
            for position, hit in enumerate(hits):
                if hit["sort"] == cursor:
                    hits = hits[position + 1 :]
                    break
        else:
            hits = hits[params.get("from_", 0) :]

        return {
            "took": 3,
            "hits": {
                "total": {"value": len(self.hits), "relation": "eq"},
                "hits": hits[: params.get("size", 10)],
            },
        }

    def get(self, index, id, **kwargs):
        if self.error is not None:
            raise self.error
        if id not in self.documents:
            from elasticsearch import NotFoundError

            raise NotFoundError("not found", meta=api_meta(404), body={"found": False})
        return {"_id": id, "_source": self.documents[id]}

    def count(self, index):
        if self.error is not None:
            raise self.error
        return {"count": len(self.hits)}

    def ping(self):
        if self.error is not None:
            raise self.error
        return True


def api_meta(status: int):
    """Response metadata for constructing elasticsearch ApiError instances."""
    from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig

    return ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )


def make_hits(count: int, start: int = 0) -> List[Dict[str, Any]]:
    """Hits with descending scores and title tie-breakers."""
    hits = []
    for i in range(start, start + count):
        score = 10.0 - i * 0.1
        title = f"Product {i:03d}"
        hits.append(
            {
                "_id": f"P{i:03d}",
                "_score": score,
                "_source": {"title": title, "vendor": "Acme Safety"},
                "sort": [score, title],
            }
        )
    return hits


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch(hits=make_hits(45))
