"""
Nearest-Neighbor Retriever for Philippine Legal Documents

Turns a query into raw candidate documents:

    1. Title/identifier cascade (when the caller flags a title lookup)
    2. Lazy query embedding, reconciled to the store dimension
    3. Ordered vector search, optionally title-filtered
    4. Reference-date re-sort (distance breaks ties)
    5. Bounded-parallel body loads from corpus storage

Candidates whose body cannot be read keep ``text=None``; scoring and
snippet extraction drop them later.
"""

import time
import logging
from datetime import date
from typing import Optional
from dataclasses import dataclass, asdict

from .config import SearchConfig
from .downsample import prepare_query_vector
from .exceptions import EmbeddingUnavailable
from .storage import CorpusStorage
from .title_resolver import TitleResolver, sort_by_reference_date

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """One raw match; ``distance`` is None for title-lookup hits."""
    uuid: str
    filename: Optional[str]
    relative_path: Optional[str]
    date: Optional[object] = None
    distance: Optional[float] = None
    text: Optional[str] = None
    title: Optional[str] = None
    category: Optional[str] = None
    # Set when the match came from following a citation in another document
    found_via_citation: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict, text: Optional[str] = None) -> "Candidate":
        return cls(
            uuid=str(row.get("uuid")),
            filename=row.get("filename"),
            relative_path=row.get("relative_path"),
            date=row.get("date"),
            distance=row.get("distance"),
            text=text,
            title=row.get("title"),
            category=row.get("category"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        if isinstance(self.date, date):
            data["date"] = self.date.isoformat()
        return data


class LegalRetriever:
    """
    Retrieval pipeline over the document/embedding store.

    Pipeline:
    1. Title cascade short-circuits on any exact-style hit
    2. Otherwise embed, reconcile and run the vector query
    3. Load bodies for the surviving rows
    """

    def __init__(
        self,
        vector_store,
        embedding_service,
        storage: CorpusStorage,
        config: Optional[SearchConfig] = None,
        resolver: Optional[TitleResolver] = None,
    ):
        """
        Initialize retriever.

        Args:
            vector_store: Store with title lookups and nearest()
            embedding_service: Anything with embed(text) -> list[float] | None
            storage: Corpus file storage for document bodies
            config: Search configuration (reference date, dimension policy)
            resolver: Title resolver; built from the store when omitted
        """
        self.store = vector_store
        self.embeddings = embedding_service
        self.storage = storage
        self.config = config or SearchConfig()
        self.resolver = resolver or TitleResolver(vector_store, self.config)

    @property
    def store_dimensions(self) -> Optional[int]:
        return self.config.embedding_dimensions or getattr(self.store, "dimensions", None)

    def _embed(self, query: str) -> Optional[list[float]]:
        try:
            embedding = self.embeddings.embed(query)
        except EmbeddingUnavailable as e:
            logger.warning(f"Embedding unavailable: {e}. Returning no matches.")
            return None
        if not embedding:
            logger.warning(f"No embedding for '{query[:50]}'. Returning no matches.")
            return None
        return embedding

    def _hydrate(self, rows: list[dict]) -> list[Candidate]:
        texts = self.storage.load_texts(rows)
        candidates = [Candidate.from_row(row, text) for row, text in zip(rows, texts)]
        missing = sum(1 for c in candidates if c.text is None)
        if missing:
            logger.info(f"{missing}/{len(candidates)} candidate bodies could not be loaded")
        return candidates

    def search_nearest(
        self,
        query: Optional[str],
        k: int = 5,
        search_by_title: bool = False,
    ) -> list[Candidate]:
        """
        Find up to ``k`` candidate documents for a query.

        Args:
            query: Free-text query
            k: Maximum candidates
            search_by_title: Run the title cascade before any vector search

        Returns:
            Candidates in final order (may be empty)

        Raises:
            DimensionMismatch: store and query dimensions differ, downsampling off
            StoreQueryFailed: any store query failed
        """
        if not query or not query.strip():
            return []

        start = time.time()
        title_filter = None

        if search_by_title:
            resolution = self.resolver.resolve(query, k)
            if resolution.found:
                candidates = self._hydrate(resolution.rows[:k])
                logger.info(
                    f"Title stage '{resolution.stage}' returned {len(candidates)} candidate(s) "
                    f"in {time.time() - start:.2f}s"
                )
                return candidates
            title_filter = resolution.title_filter

        embedding = self._embed(query)
        if embedding is None:
            return []

        vector = prepare_query_vector(embedding, self.store_dimensions, self.config.allow_downsample)
        rows = self.store.nearest(vector, k, title_filter=title_filter)
        rows = sort_by_reference_date(rows, self.config.reference_date)

        candidates = self._hydrate(rows)
        logger.info(
            f"Vector search returned {len(candidates)} candidate(s)"
            f"{' (title filter ' + repr(title_filter) + ')' if title_filter else ''}"
            f" in {time.time() - start:.2f}s"
        )
        return candidates


def get_retriever(
    vector_store,
    embedding_service,
    config: Optional[SearchConfig] = None,
) -> LegalRetriever:
    """Build a retriever with corpus storage taken from the configuration."""
    config = config or SearchConfig()
    storage = CorpusStorage(config.corpus_path, config.load_concurrency)
    return LegalRetriever(vector_store, embedding_service, storage, config)
