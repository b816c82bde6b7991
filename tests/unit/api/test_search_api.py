"""
Tests for the search and health endpoints.
"""

import logging

import pytest
from elasticsearch import ApiError, ConnectionError as ESConnectionError
from fastapi.testclient import TestClient

from conftest import FakeElasticsearch, api_meta, make_hits
from catalog_search.api.config import APISettings, get_settings
from catalog_search.api.dependencies import (
    get_embeddings,
    get_profiles,
    get_retrieval_executor,
)
from catalog_search.api.main import create_app
from catalog_search.api.middleware.timing import get_latency_tracker
from catalog_search.ml.embedding import EmbeddingAdapter
from catalog_search.ml.search.retrieval import RetrievalExecutor
from catalog_search.ml.user_modeling.profile_store import ProfileSnapshot, ProfileStore


@pytest.fixture
def app(snapshot, model_registry, fake_es):
    app = create_app()
    app.dependency_overrides[get_retrieval_executor] = lambda: RetrievalExecutor(fake_es)
    app.dependency_overrides[get_profiles] = lambda: ProfileStore(snapshot)
    app.dependency_overrides[get_embeddings] = lambda: EmbeddingAdapter(registry=model_registry)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def _use_settings(app, **kwargs):
    app.dependency_overrides[get_settings] = lambda: APISettings(**kwargs)


def _use_backend(app, es):
    app.dependency_overrides[get_retrieval_executor] = lambda: RetrievalExecutor(es)


class TestSearchEndpoint:
    def test_search(self, client):
        response = client.post("/api/v1/search", json={"query": "gloves", "userId": "u-safety"})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "gloves"
        assert data["total"] == {"value": 45, "relation": "eq"}
        assert len(data["results"]) == 20
        assert data["results"][0]["id"] == "P000"
        assert data["results"][0]["score"] == 10.0
        assert data["pagination"]["has_more"] is True
        assert data["pagination"]["next_cursor"] == [10.0 - 19 * 0.1, "Product 019"]

    def test_request_id_and_timing_headers(self, client):
        response = client.post(
            "/api/v1/search", json={"query": "gloves"}, headers={"X-Request-ID": "req-1"}
        )

        assert response.headers["X-Request-ID"] == "req-1"
        assert response.headers["X-Response-Time"].endswith("ms")

    def test_generated_request_id_matches_handler_logs(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="catalog_search.api.routers.search"):
            response = client.post("/api/v1/search", json={"query": "gloves"})

        handler_ids = {
            record.request_id
            for record in caplog.records
            if record.name == "catalog_search.api.routers.search"
        }
        assert handler_ids == {response.headers["X-Request-ID"]}

    def test_cursor_pagination(self, client):
        first = client.post("/api/v1/search", json={"query": "gloves"}).json()
        cursor = first["pagination"]["next_cursor"]

        second = client.post(
            "/api/v1/search", json={"query": "gloves", "searchAfter": cursor}
        ).json()

        assert second["results"][0]["id"] == "P020"
        first_ids = {hit["id"] for hit in first["results"]}
        assert first_ids.isdisjoint(hit["id"] for hit in second["results"])

    def test_offset_pagination(self, client):
        response = client.post("/api/v1/search", json={"query": "gloves", "from": 40})

        data = response.json()
        assert len(data["results"]) == 5
        assert data["pagination"] == {"size": 20, "from": 40, "total_pages": 3}

    def test_filters_and_flags(self, client, fake_es):
        response = client.post(
            "/api/v1/search",
            json={
                "query": "gloves",
                "filters": {"category": "Safety", "minRating": 4.5, "inventoryStatus": "in_stock"},
                "featureFlags": {"searchStrategy": "keyword_only", "fuzzyMatchingEnabled": False},
            },
        )

        assert response.status_code == 200
        sent = fake_es.search_calls[0]["query"]["bool"]
        assert sent["filter"] == [
            {"match": {"category": "Safety"}},
            {"range": {"supplier_rating": {"gte": 4.5}}},
            {"term": {"inventory_status": "in_stock"}},
        ]
        assert "fuzziness" not in sent["must"][0]["multi_match"]
        assert "script_score" not in str(sent["should"])

    def test_legacy_hybrid_switch(self, client, fake_es):
        client.post("/api/v1/search", json={"query": "gloves", "useHybridSearch": False})
        assert "script_score" not in str(fake_es.search_calls[0]["query"])

    def test_feature_flags_take_precedence_over_legacy_switch(self, client, fake_es):
        client.post(
            "/api/v1/search",
            json={
                "query": "gloves",
                "useHybridSearch": False,
                "featureFlags": {"hybridSearchEnabled": True},
            },
        )
        assert "script_score" in str(fake_es.search_calls[0]["query"])

    def test_browse_without_query(self, client, fake_es):
        response = client.post("/api/v1/search", json={"filters": {"category": "Safety"}})

        assert response.status_code == 200
        assert fake_es.search_calls[0]["query"]["bool"]["minimum_should_match"] == 0

    def test_search_disabled(self, app, client, fake_es):
        _use_settings(app, search_enabled=False)

        response = client.post("/api/v1/search", json={"query": "gloves"})

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["details"]["code"] == "SEARCH_DISABLED"
        assert fake_es.search_calls == []

    @pytest.mark.parametrize(
        "payload",
        [
            {"query": "gloves", "unknownField": 1},
            {"query": "gloves", "filters": {"minRating": 6}},
            {"query": "gloves", "filters": {"color": "red"}},
            {"query": "gloves", "size": 0},
            {"query": "gloves", "size": 101},
            {"query": "gloves", "from": -1},
            {"query": "gloves", "featureFlags": {"searchEnabled": True}},
            {"query": "x" * 501},
        ],
    )
    def test_validation_errors(self, client, payload):
        response = client.post("/api/v1/search", json=payload)

        assert response.status_code == 422
        assert response.json()["error"]["type"] == "ValidationError"

    @pytest.mark.parametrize("cursor", [[{"a": 1}], [True], "9.5"])
    def test_invalid_cursor(self, client, cursor):
        response = client.post("/api/v1/search", json={"query": "gloves", "searchAfter": cursor})

        if isinstance(cursor, str):
            # Rejected by the request model before reaching the cursor check
            assert response.status_code == 422
        else:
            assert response.status_code == 400
            assert response.json()["error"]["details"]["code"] == "INVALID_CURSOR"

    def test_backend_failure(self, app, client):
        _use_backend(app, FakeElasticsearch(error=ESConnectionError("down")))

        response = client.post("/api/v1/search", json={"query": "gloves"})

        assert response.status_code == 502
        assert response.json()["error"]["details"]["code"] == "RETRIEVAL_FAILED"


class TestSuggestions:
    def test_suggestions(self, client):
        response = client.post("/api/v1/search/suggestions", json={"query": "prod", "size": 2})

        assert response.status_code == 200
        assert response.json() == [
            {"id": "P000", "title": "Product 000", "category": None},
            {"id": "P001", "title": "Product 001", "category": None},
        ]

    def test_backend_failure_returns_empty(self, app, client):
        _use_backend(app, FakeElasticsearch(error=ESConnectionError("down")))

        response = client.post("/api/v1/search/suggestions", json={"query": "prod"})

        assert response.status_code == 200
        assert response.json() == []

    def test_query_required(self, client):
        assert client.post("/api/v1/search/suggestions", json={}).status_code == 422


class TestProductAndStats:
    def test_get_product(self, app, client):
        es = FakeElasticsearch(hits=make_hits(1))
        es.documents["P1"] = {"title": "Nitrile Gloves"}
        _use_backend(app, es)

        response = client.get("/api/v1/search/product/P1")

        assert response.status_code == 200
        assert response.json() == {"title": "Nitrile Gloves"}

    def test_product_not_found(self, client):
        response = client.get("/api/v1/search/product/missing")

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "ResourceNotFoundError"

    def test_stats(self, client):
        response = client.get("/api/v1/search/stats")

        assert response.status_code == 200
        assert response.json()["total_products"] == 45

    def test_stats_backend_failure(self, app, client):
        error = ApiError("boom", meta=api_meta(500), body={})
        _use_backend(app, FakeElasticsearch(error=error))

        response = client.get("/api/v1/search/stats")

        assert response.status_code == 502


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["elasticsearch"]["status"] == "green"
        assert data["components"]["embeddings"]["status"] == "loaded"
        assert data["components"]["profiles"]["profiles"] == 2
        assert data["feature_flags"]["search_strategy"] == "hybrid"
        assert data["components"]["profiles"]["status"] == "loaded"

    @pytest.mark.parametrize(
        "store, expected",
        [
            (ProfileStore(), "not_loaded"),
            (ProfileStore(ProfileSnapshot.empty()), "empty"),
        ],
    )
    def test_profile_status(self, app, client, store, expected):
        app.dependency_overrides[get_profiles] = lambda: store

        profiles = client.get("/health").json()["components"]["profiles"]

        assert profiles["status"] == expected
        assert profiles["profiles"] == 0

    def test_degraded_when_unreachable(self, app, client):
        _use_backend(app, FakeElasticsearch(error=ESConnectionError("down")))

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["components"]["elasticsearch"]["status"] == "unreachable"

    def test_reports_resolved_flags(self, app, client):
        _use_settings(app, search_strategy="keyword", hybrid_search_enabled=True)

        flags = client.get("/health").json()["feature_flags"]

        assert flags["search_strategy"] == "keyword_only"
        assert flags["hybrid_search_enabled"] is False

    def test_metrics(self, client):
        get_latency_tracker().reset()
        client.get("/live")

        data = client.get("/metrics").json()

        assert data["requests"]["total"] >= 1
        assert data["target_p95_ms"] == 150
        assert "meets_target" in data

    def test_live(self, client):
        assert client.get("/live").json()["status"] == "alive"

    def test_root(self):
        from catalog_search.api.main import app

        response = TestClient(app).get("/")
        assert response.json()["endpoints"]["search"] == "/api/v1/search"
