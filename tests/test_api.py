"""Tests for the FastAPI backend endpoints."""

import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tests.conftest import RA_9262_TEXT, doc_uuid


# ---------------------------------------------------------------------------
# Swap the ServiceContainer's services for test doubles
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_search_service():
    return MagicMock()


@pytest.fixture
def mock_limiter():
    limiter = MagicMock()
    limiter.limit = 100
    limiter.try_consume.return_value = True
    limiter.remaining.return_value = 99
    return limiter


@pytest.fixture
def client(corpus_dir, document_store, corpus_storage, mock_search_service, mock_limiter):
    """Create a TestClient with the container pre-populated."""
    from execution.ph_legal_rag import api
    from execution.ph_legal_rag.config import SearchConfig

    container = api._container
    saved = dict(vars(container))
    container._config = SearchConfig(corpus_path=str(corpus_dir), search_timeout_seconds=5.0)
    container._store = document_store
    container._storage = corpus_storage
    container._search_service = mock_search_service
    container._limiter = mock_limiter

    yield TestClient(api.app)

    vars(container).clear()
    vars(container).update(saved)


def _response_with_source():
    from execution.ph_legal_rag.citation import CitedSource
    from execution.ph_legal_rag.search import SearchResponse
    source = CitedSource(
        uuid=doc_uuid(1),
        filename="ra_9262_2004",
        token=f"identifier:{doc_uuid(1)}/ra_9262_2004.txt",
        law_name="Republic Act No. 9262",
        snippet="This Act shall be known as the Anti-Violence Against Women and Their Children Act of 2004.",
        relevance_score=0.93,
        date="2004-03-08",
    )
    return SearchResponse(matches=[], answer="### Republic Act No. 9262", sources=[source])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    def test_ok(self, client):
        from execution.ph_legal_rag import __version__
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["version"] == __version__
        assert data["database"] == "connected"
        assert data["requests_remaining"] == 99

    def test_database_down(self, client, monkeypatch, mock_limiter):
        from execution.ph_legal_rag import api
        from execution.ph_legal_rag.exceptions import StoreQueryFailed

        def unavailable():
            raise StoreQueryFailed("connect")

        monkeypatch.setattr(api._container, "get_store", unavailable)
        data = client.get("/api/v1/health").json()
        assert data["database"] == "disconnected"
        assert data["requests_remaining"] is None
        mock_limiter.remaining.assert_not_called()

    def test_counter_down(self, client, mock_limiter):
        from execution.ph_legal_rag.exceptions import StoreQueryFailed
        mock_limiter.remaining.side_effect = StoreQueryFailed("counter_read")
        data = client.get("/api/v1/health").json()
        assert data["database"] == "connected"
        assert data["requests_remaining"] is None


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class TestSearchEndpoint:

    def test_success(self, client, mock_search_service):
        mock_search_service.search.return_value = _response_with_source()
        resp = client.post("/api/v1/search", json={"query": "  RA 9262  "})
        assert resp.status_code == 200
        data = resp.json()
        assert data["question"] == "RA 9262"
        assert data["answer"] == "### Republic Act No. 9262"
        assert data["sources"] == [f"identifier:{doc_uuid(1)}/ra_9262_2004.txt"]
        assert data["details"][0]["law_name"] == "Republic Act No. 9262"
        assert data["details"][0]["date"] == "2004-03-08"
        assert data["latency_ms"] >= 0
        mock_search_service.search.assert_called_once_with("RA 9262", None, None)

    def test_options_forwarded(self, client, mock_search_service):
        mock_search_service.search.return_value = _response_with_source()
        client.post("/api/v1/search", json={"query": "custody", "k": 3, "search_by_title": False})
        mock_search_service.search.assert_called_once_with("custody", 3, False)

    def test_no_results_is_not_an_error(self, client, mock_search_service):
        from execution.ph_legal_rag.search import NO_DOCUMENTS, SearchResponse
        mock_search_service.search.return_value = SearchResponse([], NO_DOCUMENTS)
        resp = client.post("/api/v1/search", json={"query": "custody"})
        assert resp.status_code == 200
        assert resp.json()["answer"] == NO_DOCUMENTS
        assert resp.json()["sources"] == []

    def test_blank_query(self, client, mock_limiter):
        resp = client.post("/api/v1/search", json={"query": "   "})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "query required"
        mock_limiter.try_consume.assert_not_called()

    @pytest.mark.parametrize("body", [{}, {"query": "custody", "k": 0}, {"query": "x" * 2001}])
    def test_invalid_body(self, client, body):
        assert client.post("/api/v1/search", json=body).status_code == 422

    def test_rate_limited(self, client, mock_limiter, mock_search_service):
        mock_limiter.try_consume.return_value = False
        resp = client.post("/api/v1/search", json={"query": "custody"})
        assert resp.status_code == 429
        detail = resp.json()["detail"]
        assert detail["code"] == "RATE_LIMIT"
        assert "100 requests/day" in detail["message"]
        mock_search_service.search.assert_not_called()

    def test_counter_failure(self, client, mock_limiter):
        from execution.ph_legal_rag.exceptions import StoreQueryFailed
        mock_limiter.try_consume.side_effect = StoreQueryFailed("counter_increment")
        assert client.post("/api/v1/search", json={"query": "custody"}).status_code == 500

    def test_search_failure(self, client, mock_search_service):
        from execution.ph_legal_rag.exceptions import StoreQueryFailed
        mock_search_service.search.side_effect = StoreQueryFailed("vector_search")
        resp = client.post("/api/v1/search", json={"query": "custody"})
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Internal server error"

    def test_timeout(self, client, mock_search_service):
        from execution.ph_legal_rag import api
        api._container._config.search_timeout_seconds = 0.05

        def slow(*args):
            time.sleep(0.5)
            return _response_with_source()

        mock_search_service.search.side_effect = slow
        resp = client.post("/api/v1/search", json={"query": "custody"})
        assert resp.status_code == 504
        assert resp.json()["detail"] == "Search timeout"


# ---------------------------------------------------------------------------
# File serving
# ---------------------------------------------------------------------------

class TestFileEndpoint:

    def test_serves_body(self, client):
        resp = client.get(f"/api/v1/file/{doc_uuid(1)}")
        assert resp.status_code == 200
        assert resp.text == RA_9262_TEXT
        assert resp.headers["content-type"].startswith("text/plain")

    def test_invalid_uuid(self, client):
        resp = client.get("/api/v1/file/not-a-uuid")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid UUID format"

    def test_unknown_document(self, client):
        resp = client.get(f"/api/v1/file/{doc_uuid(99)}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Document not found"

    def test_missing_body(self, client):
        resp = client.get(f"/api/v1/file/{doc_uuid(5)}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "File not found"

    def test_path_outside_corpus(self, client, corpus_dir):
        from execution.ph_legal_rag import api
        (corpus_dir.parent / "secret.txt").write_text("do not serve", encoding="utf-8")
        store = MagicMock()
        store.get_document.return_value = {"relative_path": "..", "filename": "secret"}
        api._container._store = store
        resp = client.get(f"/api/v1/file/{doc_uuid(1)}")
        assert resp.status_code == 403
        assert "do not serve" not in resp.text

    def test_store_failure(self, client):
        from execution.ph_legal_rag import api
        from execution.ph_legal_rag.exceptions import StoreQueryFailed
        store = MagicMock()
        store.get_document.side_effect = StoreQueryFailed("get_document")
        api._container._store = store
        assert client.get(f"/api/v1/file/{doc_uuid(1)}").status_code == 500


# ---------------------------------------------------------------------------
# Container wiring
# ---------------------------------------------------------------------------

class TestServiceContainer:

    def test_limiter_counts_in_memory_when_database_down(self):
        from unittest.mock import patch
        from execution.ph_legal_rag.api import ServiceContainer
        from execution.ph_legal_rag.config import SearchConfig
        from execution.ph_legal_rag.exceptions import StoreQueryFailed
        from execution.ph_legal_rag.vector_store import VectorStore

        container = ServiceContainer()
        container._config = SearchConfig(database_url="postgresql://db/legal", daily_request_limit=2)
        with patch.object(VectorStore, "connect", side_effect=StoreQueryFailed("connect")):
            limiter = container.get_limiter()
            assert [limiter.try_consume() for _ in range(3)] == [True, True, False]
            assert limiter.remaining() == 0
        assert limiter.fallback.count(limiter._today()) == 2
        assert container._store is None

    def test_limiter_shares_connected_store(self):
        from unittest.mock import patch
        from execution.ph_legal_rag.api import ServiceContainer
        from execution.ph_legal_rag.config import SearchConfig
        from execution.ph_legal_rag.vector_store import VectorStore

        container = ServiceContainer()
        container._config = SearchConfig()
        with patch.object(VectorStore, "connect") as connect:
            limiter = container.get_limiter()
        connect.assert_called_once()
        assert limiter.store.store is container._store
