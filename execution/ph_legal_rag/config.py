"""
Search Configuration for the Philippine Legal RAG core

One explicit configuration object is built at startup and handed to the
resolver, search engine, snippet extractor and rate limiter. Nothing else in
the package reads the process environment.
"""

import os
import logging
from datetime import date
from typing import Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# pgvector distance operators. Scoring needs distance >= 0 with lower meaning
# closer, so the negative inner product (<#>) is not accepted.
DISTANCE_OPERATORS = {
    "<->": "l2",
    "<=>": "cosine",
}

# Whitelist for SQL interpolation of the operator
VALID_DISTANCE_OPERATORS = frozenset(DISTANCE_OPERATORS)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def parse_reference_date(value) -> Optional[date]:
    """Parse an ISO date (``2025-11-10``) or pass through a date; None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable reference date {value!r}")
        return None


@dataclass
class SearchConfig:
    """Configuration for retrieval, scoring and snippet extraction."""
    # Recency policy: when set, results closer to this date win ties on relevance
    reference_date: Optional[date] = None

    # Storage
    corpus_path: str = "corpus"
    database_url: Optional[str] = None

    # Vector space: declared store dimension D (None = trust the provider)
    embedding_dimensions: Optional[int] = None
    allow_downsample: bool = True
    distance_operator: str = "<->"

    # Result sizes and scoring
    max_matches: int = 5
    min_relevance: float = 0.2
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3

    # Bounded parallelism for per-candidate file loads
    load_concurrency: int = 6

    # Snippets
    snippet_max_chars: int = 300
    use_llm_snippet: bool = False
    snippet_chunk_size: int = 1_100_000
    snippet_chunk_overlap: int = 500
    snippet_max_chunks: int = 20

    # Optional LLM-backed stages (each has a deterministic fallback)
    use_llm_title_classifier: bool = False
    interpret_matches: bool = True

    # Citation follow-up: search statutes/cases cited inside retrieved documents
    follow_citations: bool = False
    max_followed_citations: int = 5
    matches_per_citation: int = 2

    # Daily request counter
    daily_request_limit: int = 100
    search_timeout_seconds: float = 50.0

    # HTTP surface
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Models (OpenAI-compatible endpoint)
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_api_key: Optional[str] = None
    embedding_provider: str = "openai"
    embedding_model: str = "qwen/qwen3-embedding-8b"
    embedding_api_key: Optional[str] = None
    embedding_cache_dir: Optional[str] = None
    classifier_model: str = "openai/gpt-oss-20b"
    snippet_model: str = "ibm-granite/granite-4.0-h-micro"
    interpretation_model: str = "google/gemini-2.0-flash-001"
    interpretation_model_small: str = "openai/gpt-oss-20b"

    def __post_init__(self):
        self.reference_date = parse_reference_date(self.reference_date)
        if self.distance_operator not in VALID_DISTANCE_OPERATORS:
            logger.warning(
                f"Invalid distance operator '{self.distance_operator}', falling back to '<->'"
            )
            self.distance_operator = "<->"
        if self.snippet_chunk_overlap >= self.snippet_chunk_size:
            self.snippet_chunk_overlap = max(0, self.snippet_chunk_size // 10)
        if self.load_concurrency < 1:
            self.load_concurrency = 1

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """
        Build a configuration from environment variables.

        Recognised variables: RAG_TODAY, RAG_CORPUS_PATH, DATABASE_URL / POSTGRES_URL, DOWNSAMPLE_DIM,
        ALLOW_DOWNSAMPLE, VECTOR_DISTANCE_OP, USE_LLM_SNIPPET,
        SNIPPET_CHUNK_SIZE, SNIPPET_CHUNK_OVERLAP, SNIPPET_MAX_CHUNKS,
        USE_LLM_TITLE_CLASSIFIER, INTERPRET_MATCHES, FOLLOW_CITATIONS,
        HARD_LIMIT, CORS_ORIGINS, LLM_BASE_URL, EMBEDDING_PROVIDER, EMBEDDING_MODEL,
        EMBEDDING_CACHE_DIR, and the provider keys OPENROUTER_API_KEY /
        OPENAI_API_KEY, VOYAGE_API_KEY, COHERE_API_KEY.
        """
        defaults = cls()
        provider = os.getenv("EMBEDDING_PROVIDER", defaults.embedding_provider)
        llm_api_key = os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY")
        embedding_api_key = {
            "voyage": os.getenv("VOYAGE_API_KEY"),
            "cohere": os.getenv("COHERE_API_KEY"),
        }.get(provider, llm_api_key)
        return cls(
            reference_date=os.getenv("RAG_TODAY"),
            corpus_path=os.getenv("RAG_CORPUS_PATH", defaults.corpus_path),
            database_url=os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL"),
            embedding_dimensions=_env_int("DOWNSAMPLE_DIM", None),
            allow_downsample=_env_bool("ALLOW_DOWNSAMPLE", True),
            distance_operator=os.getenv("VECTOR_DISTANCE_OP", defaults.distance_operator),
            use_llm_snippet=_env_bool("USE_LLM_SNIPPET", False),
            snippet_chunk_size=_env_int("SNIPPET_CHUNK_SIZE", defaults.snippet_chunk_size),
            snippet_chunk_overlap=_env_int("SNIPPET_CHUNK_OVERLAP", defaults.snippet_chunk_overlap),
            snippet_max_chunks=_env_int("SNIPPET_MAX_CHUNKS", defaults.snippet_max_chunks),
            use_llm_title_classifier=_env_bool("USE_LLM_TITLE_CLASSIFIER", False),
            interpret_matches=_env_bool("INTERPRET_MATCHES", True),
            follow_citations=_env_bool("FOLLOW_CITATIONS", False),
            daily_request_limit=_env_int("HARD_LIMIT", defaults.daily_request_limit),
            cors_origins=os.getenv("CORS_ORIGINS", defaults.cors_origins),
            llm_base_url=os.getenv("LLM_BASE_URL", defaults.llm_base_url),
            llm_api_key=llm_api_key,
            embedding_provider=provider,
            embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
            embedding_api_key=embedding_api_key,
            embedding_cache_dir=os.getenv("EMBEDDING_CACHE_DIR") or None,
        )
