"""
FastAPI Backend for the Philippine Legal RAG core

Exposes search, source-document lookup and health endpoints over the
retrieval and re-ranking pipeline.

Run with: uvicorn execution.ph_legal_rag.api:app --host 0.0.0.0 --port 8000
"""

import time
import uuid
import asyncio
import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .api_models import SearchRequest, SearchResult, SourceInfo, HealthResponse
from .config import SearchConfig
from .exceptions import (
    FileLoadFailed,
    LegalRagError,
    PathOutsideCorpus,
    RateLimitExceeded,
    StoreQueryFailed,
)

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)


# =============================================================================
# Service Container - builds each service once, on first use
# =============================================================================

class ServiceContainer:
    """Lazily wires configuration, store, storage, models and the limiter."""

    def __init__(self):
        self._config = None
        self._store = None
        self._storage = None
        self._llm = None
        self._search_service = None
        self._limiter = None

    def get_config(self) -> SearchConfig:
        if self._config is None:
            self._config = SearchConfig.from_env()
        return self._config

    def _new_store(self):
        from .vector_store import VectorStore, VectorStoreConfig
        return VectorStore(VectorStoreConfig.from_search_config(self.get_config()))

    def get_store(self):
        if self._store is None:
            store = self._new_store()
            store.connect()
            self._store = store
        return self._store

    def get_storage(self):
        if self._storage is None:
            from .storage import CorpusStorage
            config = self.get_config()
            self._storage = CorpusStorage(config.corpus_path, config.load_concurrency)
        return self._storage

    def get_llm(self):
        if self._llm is None:
            from .llm import LLMClient
            self._llm = LLMClient(self.get_config())
        return self._llm

    def get_search_service(self):
        if self._search_service is None:
            from .embeddings import get_embedding_service
            from .retriever import LegalRetriever
            from .search import SearchService
            from .snippets import SnippetExtractor

            config = self.get_config()
            llm = self.get_llm()
            embeddings = get_embedding_service(config=config)
            retriever = LegalRetriever(self.get_store(), embeddings, self.get_storage(), config)
            self._search_service = SearchService(
                retriever, SnippetExtractor(config, llm), config, llm,
            )
        return self._search_service

    def get_limiter(self):
        if self._limiter is None:
            from .rate_limiter import DailyRateLimiter, InMemoryCounterStore, PostgresCounterStore
            try:
                store = self.get_store()
            except StoreQueryFailed as e:
                # Unconnected store: each counter call retries the connection
                # and falls back to memory while the database is down
                logger.warning(f"Counter database unavailable at startup, counting in memory: {e}")
                store = self._new_store()
            self._limiter = DailyRateLimiter(
                PostgresCounterStore(store),
                limit=self.get_config().daily_request_limit,
                fallback=InMemoryCounterStore(),
            )
        return self._limiter


_container = ServiceContainer()

app = FastAPI(
    title="Philippine Legal RAG API",
    description="Retrieval and re-ranking over Philippine statutes and jurisprudence",
    version=__version__,
)

# Configure CORS from CORS_ORIGINS (comma-separated)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _container.get_config().cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    remaining = None
    try:
        _container.get_store()
        db_status = "connected"
    except LegalRagError as e:
        logger.warning(f"Health check: database disconnected: {e}")
        db_status = "disconnected"

    if db_status == "connected":
        try:
            remaining = _container.get_limiter().remaining()
        except LegalRagError as e:
            logger.warning(f"Health check: request counter unavailable: {e}")

    return HealthResponse(
        status="ok",
        version=__version__,
        database=db_status,
        requests_remaining=remaining,
    )


@app.post("/api/v1/search", response_model=SearchResult)
async def search(request: SearchRequest):
    """Answer one query with cited sources."""
    query = request.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="query required")

    start = time.time()
    config = _container.get_config()
    try:
        limiter = _container.get_limiter()
        if not limiter.try_consume():
            raise RateLimitExceeded(limiter.limit)
    except RateLimitExceeded as e:
        raise HTTPException(status_code=429, detail={"code": "RATE_LIMIT", "message": str(e)})
    except LegalRagError as e:
        logger.error(f"Request counter failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    try:
        service = _container.get_search_service()
        loop = asyncio.get_running_loop()
        response = await asyncio.wait_for(
            loop.run_in_executor(None, service.search, query, request.k, request.search_by_title),
            timeout=config.search_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error(f"Search timed out after {config.search_timeout_seconds}s: '{query[:50]}'")
        raise HTTPException(status_code=504, detail="Search timeout")
    except LegalRagError as e:
        logger.error(f"Search failed for '{query[:50]}': {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    latency_ms = (time.time() - start) * 1000
    logger.info(f"Search answered with {len(response.sources)} source(s) in {latency_ms:.0f}ms")
    return SearchResult(
        question=query,
        answer=response.answer,
        sources=response.tokens,
        details=[SourceInfo(**s.to_dict()) for s in response.sources],
        latency_ms=latency_ms,
    )


@app.get("/api/v1/file/{document_id}", response_class=PlainTextResponse)
async def get_document_file(document_id: str):
    """Return the plain-text body of a document by uuid."""
    try:
        uuid.UUID(document_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid UUID format")

    try:
        store = _container.get_store()
        row = store.get_document(document_id)
        if not row:
            raise HTTPException(status_code=404, detail="Document not found")
        text = _container.get_storage().read_text(row.get("relative_path"), row.get("filename"))
    except PathOutsideCorpus as e:
        logger.warning(f"Refused document path for {document_id}: {e}")
        raise HTTPException(status_code=403, detail="Forbidden")
    except FileLoadFailed as e:
        logger.warning(f"Document body unavailable for {document_id}: {e}")
        raise HTTPException(status_code=404, detail="File not found")
    except StoreQueryFailed as e:
        logger.error(f"Document lookup failed for {document_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return PlainTextResponse(text)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
