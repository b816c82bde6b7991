"""
Tests for the search service orchestration.
"""

import json
import logging

import pytest

from conftest import FakeElasticsearch, FakeEncoder, make_hits
from catalog_search.ml.embedding import EmbeddingAdapter
from catalog_search.ml.search.errors import (
    InvalidCursorError,
    InvalidSearchRequestError,
    SearchDisabledError,
)
from catalog_search.ml.search.flags import FlagOverrides, FlagSet, SearchStrategy
from catalog_search.ml.search.query_compiler import SearchFilters
from catalog_search.ml.search.retrieval import RetrievalExecutor
from catalog_search.ml.search.search_service import SearchRequest, SearchService
from catalog_search.ml.user_modeling.profile_store import ProfileStore


@pytest.fixture
def service(snapshot, model_registry, fake_es) -> SearchService:
    return SearchService(
        defaults=FlagSet(),
        profile_store=ProfileStore(snapshot),
        embedding_adapter=EmbeddingAdapter(registry=model_registry),
        executor=RetrievalExecutor(fake_es),
    )


def _sent_query(fake_es, call=0):
    return json.dumps(fake_es.search_calls[call]["query"])


class TestSearch:
    def test_basic_search(self, service, fake_es, fake_encoder):
        result = service.search(SearchRequest(query="gloves", user_id="u-safety"))

        assert result.total == 45
        assert len(result.results) == 20
        assert result.results[0]["id"] == "P000"
        assert result.used_embedding is True
        assert fake_encoder.calls == ["query: gloves"]
        assert "cosineSimilarity" in _sent_query(fake_es)
        assert "Acme Safety" in _sent_query(fake_es)

    def test_to_dict(self, service):
        payload = service.search(SearchRequest(query="gloves", size=5)).to_dict()

        assert payload["query"] == "gloves"
        assert payload["total"] == {"value": 45, "relation": "eq"}
        assert len(payload["results"]) == 5
        assert payload["took_ms"] == 3
        assert payload["pagination"]["has_more"] is True

    def test_disabled_raises_before_any_work(self, snapshot, model_registry, fake_es, fake_encoder):
        service = SearchService(
            FlagSet(search_enabled=False),
            ProfileStore(snapshot),
            EmbeddingAdapter(registry=model_registry),
            RetrievalExecutor(fake_es),
        )

        with pytest.raises(SearchDisabledError) as exc_info:
            service.search(SearchRequest(query="gloves"))

        assert exc_info.value.details == {"code": "SEARCH_DISABLED"}
        assert fake_es.search_calls == []
        assert fake_encoder.calls == []

    def test_disabled_checked_before_validation(self, snapshot, model_registry, fake_es):
        service = SearchService(
            FlagSet(search_enabled=False),
            ProfileStore(snapshot),
            EmbeddingAdapter(registry=model_registry),
            RetrievalExecutor(fake_es),
        )

        with pytest.raises(SearchDisabledError):
            service.search(SearchRequest(query="gloves", size=500))

    def test_keyword_only_skips_embedding(self, service, fake_es, fake_encoder):
        overrides = FlagOverrides(strategy=SearchStrategy.KEYWORD_ONLY)
        result = service.search(SearchRequest(query="gloves", overrides=overrides))

        assert fake_encoder.calls == []
        assert result.used_embedding is False
        assert "cosineSimilarity" not in _sent_query(fake_es)

    def test_blank_query_skips_embedding(self, service, fake_encoder):
        service.search(SearchRequest(query="", filters=SearchFilters(category="Safety")))
        assert fake_encoder.calls == []

    def test_embedding_failure_falls_back_to_keyword(
        self, snapshot, model_registry, fake_es, caplog
    ):
        model_registry.set_embedding_model(FakeEncoder(dim=768))
        service = SearchService(
            FlagSet(),
            ProfileStore(snapshot),
            EmbeddingAdapter(registry=model_registry),
            RetrievalExecutor(fake_es),
        )

        with caplog.at_level(logging.WARNING):
            result = service.search(SearchRequest(query="gloves"))

        assert result.used_embedding is False
        assert len(result.results) == 20
        assert "cosineSimilarity" not in _sent_query(fake_es)
        assert "embeddings are not available" in caplog.text

    def test_request_overrides_do_not_leak(self, service, fake_es):
        service.search(
            SearchRequest(query="gloves", overrides=FlagOverrides(fuzzy_enabled=False))
        )
        service.search(SearchRequest(query="gloves"))

        assert "fuzziness" not in _sent_query(fake_es, 0)
        assert "fuzziness" in _sent_query(fake_es, 1)
        assert service.defaults.fuzzy_enabled is True

    def test_invalid_size(self, service):
        with pytest.raises(InvalidSearchRequestError):
            service.search(SearchRequest(query="gloves", size=0))

    def test_invalid_cursor(self, service, fake_es):
        with pytest.raises(InvalidCursorError):
            service.search(SearchRequest(query="gloves", search_after=[{"bad": 1}]))
        assert fake_es.search_calls == []

    def test_reads_current_snapshot(self, snapshot, model_registry, fake_es):
        store = ProfileStore()
        service = SearchService(
            FlagSet(),
            store,
            EmbeddingAdapter(registry=model_registry),
            RetrievalExecutor(fake_es),
        )

        service.search(SearchRequest(query="gloves", user_id="u-safety"))
        store.publish(snapshot)
        service.search(SearchRequest(query="gloves", user_id="u-safety"))

        assert '"_id": ["P1", "P2"]' not in _sent_query(fake_es, 0)
        assert '"_id": ["P1", "P2"]' in _sent_query(fake_es, 1)


class TestPagination:
    def test_cursor_walk_has_no_duplicates(self, service):
        seen = []
        cursor = None
        pages = 0

        while True:
            result = service.search(SearchRequest(query="gloves", size=20, search_after=cursor))
            pages += 1
            seen.extend(hit["id"] for hit in result.results)
            cursor = result.pagination.get("next_cursor")
            if cursor is None:
                break

        assert pages == 3
        assert len(seen) == 45
        assert len(set(seen)) == 45
        assert result.pagination["has_more"] is False

    def test_full_page_returns_cursor(self, service):
        result = service.search(SearchRequest(query="gloves", size=20))

        assert result.pagination["next_cursor"] == [10.0 - 19 * 0.1, "Product 019"]
        assert result.pagination["has_more"] is True

    def test_partial_offset_page_has_no_cursor(self, service):
        result = service.search(SearchRequest(query="gloves", size=20, offset=40))

        assert len(result.results) == 5
        assert result.pagination == {"size": 20, "from": 40, "total_pages": 3}

    def test_cursor_from_hit_without_title(self, snapshot, model_registry):
        hits = make_hits(3)
        for hit in hits[1:]:
            del hit["_source"]["title"]
            hit["sort"] = [hit["_score"], None]
        service = SearchService(
            FlagSet(),
            ProfileStore(snapshot),
            EmbeddingAdapter(registry=model_registry),
            RetrievalExecutor(FakeElasticsearch(hits=hits)),
        )

        first = service.search(SearchRequest(query="gloves", size=2))
        cursor = first.pagination["next_cursor"]
        assert cursor == [hits[1]["_score"], None]

        second = service.search(SearchRequest(query="gloves", size=2, search_after=cursor))

        assert [hit["id"] for hit in second.results] == ["P002"]
        assert second.pagination["has_more"] is False
