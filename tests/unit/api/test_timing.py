"""
Tests for request latency tracking.
"""

import pytest
from fastapi.testclient import TestClient

from catalog_search.api.dependencies import get_retrieval_executor
from catalog_search.api.main import create_app
from catalog_search.api.middleware.timing import LatencyTracker, get_latency_tracker
from catalog_search.ml.search.retrieval import RetrievalExecutor


class TestLatencyTracker:
    def test_overall_and_per_path(self):
        tracker = LatencyTracker()
        tracker.record(10.0, path="/a")
        tracker.record(30.0, path="/b")

        assert tracker.get_stats()["count"] == 2
        assert tracker.get_stats("/a")["max"] == 10.0
        assert tracker.get_stats("/unknown")["count"] == 0

    def test_window_size(self):
        tracker = LatencyTracker(window_size=3)
        for latency in range(10):
            tracker.record(float(latency), path="/a")

        assert tracker.get_stats()["count"] == 3
        assert tracker.get_stats("/a")["min"] == 7.0

    def test_distinct_paths_are_capped(self):
        tracker = LatencyTracker(max_paths=3)
        for i in range(5000):
            tracker.record(1.0, path=f"/api/v1/search/product/P{i}")

        assert len(tracker.by_path) == 3
        assert tracker.get_stats()["count"] == 1000
        # Paths already tracked keep recording after the cap is reached
        tracker.record(2.0, path="/api/v1/search/product/P0")
        assert tracker.get_stats("/api/v1/search/product/P0")["max"] == 2.0

    def test_no_path_counts_only_overall(self):
        tracker = LatencyTracker()
        tracker.record(5.0)

        assert tracker.by_path == {}
        assert tracker.get_stats()["count"] == 1

    def test_reset(self):
        tracker = LatencyTracker()
        tracker.record(5.0, path="/a")
        tracker.reset()

        assert tracker.get_stats()["count"] == 0
        assert tracker.by_path == {}


class TestTimingMiddleware:
    @pytest.fixture
    def client(self, fake_es):
        get_latency_tracker().reset()
        app = create_app()
        app.dependency_overrides[get_retrieval_executor] = lambda: RetrievalExecutor(fake_es)
        yield TestClient(app)
        get_latency_tracker().reset()

    def test_keyed_on_route_template(self, client):
        for product_id in ("P000", "P001", "missing"):
            client.get(f"/api/v1/search/product/{product_id}")

        tracker = get_latency_tracker()
        assert list(tracker.by_path) == ["/api/v1/search/product/{product_id}"]
        assert tracker.get_stats("/api/v1/search/product/{product_id}")["count"] == 3

    def test_unmatched_paths_not_tracked_per_path(self, client):
        for i in range(5):
            response = client.get(f"/no-such-page-{i}")
            assert response.status_code == 404

        tracker = get_latency_tracker()
        assert tracker.by_path == {}
        assert tracker.get_stats()["count"] == 5
