"""
Philippine Legal RAG - retrieval and re-ranking core

Answers free-text questions about Philippine statutes and jurisprudence with
cited source documents:
- Title/identifier lookup cascade for queries like "RA 9262" or "G.R. No. 12345"
- Nearest-neighbour search over pgvector embeddings, reconciled to the store dimension
- Hybrid semantic + keyword relevance scoring
- Query-relevant snippets, law-name extraction and source tokens
- A daily request counter shared through PostgreSQL
"""

from .config import SearchConfig
from .vector_store import VectorStore
from .retriever import LegalRetriever
from .search import SearchService
from .rate_limiter import DailyRateLimiter

__all__ = [
    "SearchConfig",
    "VectorStore",
    "LegalRetriever",
    "SearchService",
    "DailyRateLimiter",
]

__version__ = "0.1.0"
