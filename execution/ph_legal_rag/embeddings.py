"""
Embedding Service for the Philippine Legal RAG core

Converts free text into a fixed-length vector through an external provider.
Supports batching for ingestion-side callers, memory and file caching, and
document vs query input types.

Architecture:
    BaseEmbeddingService  -- shared caching, batching, embed, embed_documents
        OpenAIEmbeddingService  -- OpenAI-compatible endpoint (OpenRouter qwen3-embedding-8b)
        VoyageEmbeddingService  -- Voyage AI voyage-law-2
        CohereEmbeddingService  -- Cohere embed-english-v3.0

Contract for the retrieval core: embed(text) returns a vector or None.
Provider failures surface as EmbeddingUnavailable.
"""

import json
import hashlib
import logging
from typing import Optional
from dataclasses import dataclass
from pathlib import Path

from .config import SearchConfig
from .exceptions import EmbeddingUnavailable

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for an embedding provider."""
    provider: str = "openai"  # "openai", "voyage" or "cohere"
    model: str = "qwen/qwen3-embedding-8b"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    # Native dimension reported by the provider; None = whatever it returns
    dimensions: Optional[int] = None
    batch_size: int = 64
    max_tokens_per_batch: int = 100000
    chars_per_token: float = 4.0
    cache_dir: Optional[str] = None
    use_cache: bool = True


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Subclasses implement:
    - _init_client(): build the provider SDK client
    - _request(texts, input_type): one provider call returning vectors

    And set these class attributes:
    - _provider_name: Human-readable provider name for log and error messages
    - _doc_input_type / _query_input_type: provider input type strings
    """

    _provider_name: str = "Base"
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self._client = None
        self._cache = {}

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

        self._init_client()

    def _init_client(self):
        """Initialize the provider-specific API client. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _init_client()")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        """Call the provider for one batch. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _request()")

    def _create_batches(self, texts: list[str]) -> list[list[str]]:
        """Split texts into batches respecting both item count and token limits."""
        batches = []
        current_batch = []
        current_tokens = 0
        cpt = self.config.chars_per_token

        for text in texts:
            est_tokens = len(text) / cpt
            if current_batch and (
                len(current_batch) >= self.config.batch_size
                or current_tokens + est_tokens > self.config.max_tokens_per_batch
            ):
                batches.append(current_batch)
                current_batch = []
                current_tokens = 0
            current_batch.append(text)
            current_tokens += est_tokens

        if current_batch:
            batches.append(current_batch)

        return batches

    def _require_client(self):
        if not self._client:
            raise EmbeddingUnavailable(
                f"{self._provider_name} client not initialized. Check the API key."
            )

    def embed(self, text: Optional[str]) -> Optional[list[float]]:
        """
        Embed a search query.

        Returns:
            Embedding vector, or None for blank text / an empty provider response

        Raises:
            EmbeddingUnavailable: client missing or provider call failed
        """
        if text is None or not text.strip():
            return None

        self._require_client()

        cache_key = self._get_cache_key(text, self._query_input_type)
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        result = self._embed_batch([text], input_type=self._query_input_type)
        if result and result[0]:
            self._set_cached(cache_key, result[0])
            return result[0]

        logger.warning(f"{self._provider_name} returned no embedding for '{text[:50]}'")
        return None

    def embed_query(self, query: Optional[str]) -> Optional[list[float]]:
        """Alias of embed() for callers written against the query name."""
        return self.embed(query)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for document bodies (ingestion side).

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []

        self._require_client()
        batches = self._create_batches(texts)

        logger.info(
            f"Embedding {len(texts)} documents in {len(batches)} batches"
            f" with {self._provider_name}"
        )

        embeddings = []
        for batch_idx, batch in enumerate(batches):
            embeddings.extend(self._embed_batch(batch, input_type=self._doc_input_type))
            if (batch_idx + 1) % 10 == 0:
                logger.info(f"Processed batch {batch_idx + 1}/{len(batches)}")

        return embeddings

    def _embed_batch(self, texts: list[str], input_type: str) -> list[list[float]]:
        """Embed a batch, serving cached entries and calling the provider for the rest."""
        results = []
        uncached_texts = []
        uncached_indices = []

        for i, text in enumerate(texts):
            cached = self._get_cached(self._get_cache_key(text, input_type))
            if cached is not None:
                results.append((i, cached))
            else:
                uncached_texts.append(text)
                uncached_indices.append(i)

        if uncached_texts:
            try:
                vectors = self._request(uncached_texts, input_type)
            except Exception as e:
                logger.error(f"{self._provider_name} embedding failed: {e}")
                raise EmbeddingUnavailable(f"{self._provider_name} embedding failed: {e}", e) from e

            for idx, embedding in zip(uncached_indices, vectors or []):
                embedding = list(embedding)
                self._set_cached(self._get_cache_key(texts[idx], input_type), embedding)
                results.append((idx, embedding))

        results.sort(key=lambda x: x[0])
        return [emb for _, emb in results]

    def _get_cache_key(self, text: str, input_type: str) -> str:
        """Generate cache key for text."""
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        """Get cached embedding."""
        if not self.config.use_cache:
            return None

        if key in self._cache:
            return self._cache[key]

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                        self._cache[key] = embedding
                        return embedding
                except (OSError, ValueError) as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        """Cache an embedding."""
        if not self.config.use_cache:
            return

        self._cache[key] = embedding

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, "w") as f:
                    json.dump(embedding, f)
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")

    @property
    def dimensions(self) -> Optional[int]:
        """Return the provider's native embedding dimension, if declared."""
        return self.config.dimensions


class OpenAIEmbeddingService(BaseEmbeddingService):
    """
    Embeddings through an OpenAI-compatible /embeddings endpoint.

    Defaults to OpenRouter serving qwen/qwen3-embedding-8b (4096 dims), which
    is usually larger than the store's declared dimension and gets
    block-averaged down before comparison.
    """

    _provider_name = "OpenAI-compatible"

    def _init_client(self):
        """Initialize the OpenAI SDK client."""
        if not self.config.api_key:
            logger.warning("No API key for the embedding endpoint. Embeddings will fail.")
            return

        from openai import OpenAI
        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            timeout=30.0,
        )
        logger.info(f"OpenAI-compatible embedding client initialized with model {self.config.model}")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embeddings.create(model=self.config.model, input=texts)
        return [item.embedding for item in response.data]


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI's voyage-law-2 model.

    voyage-law-2 is tuned for legal text and distinguishes document and
    query input types.
    """

    _provider_name = "Voyage AI"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        """Initialize the Voyage AI client."""
        if not self.config.api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Embeddings will fail. "
                "Get your free API key at https://dash.voyageai.com/"
            )
            return

        import voyageai
        self._client = voyageai.Client(api_key=self.config.api_key)
        logger.info(f"Voyage AI client initialized with model {self.config.model}")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embed(texts=texts, model=self.config.model, input_type=input_type)
        return response.embeddings


class CohereEmbeddingService(BaseEmbeddingService):
    """Generates embeddings using Cohere's embed-v3 model."""

    _provider_name = "Cohere"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self):
        """Initialize the Cohere client."""
        if not self.config.api_key:
            logger.warning(
                "COHERE_API_KEY not found. Embeddings will fail. "
                "Set the environment variable or use a different provider."
            )
            return

        import cohere
        self._client = cohere.Client(self.config.api_key)
        logger.info(f"Cohere client initialized with model {self.config.model}")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embed(texts=texts, model=self.config.model, input_type=input_type)
        return response.embeddings


_PROVIDERS = {
    "openai": (OpenAIEmbeddingService, None),
    "voyage": (VoyageEmbeddingService, "voyage-law-2"),
    "cohere": (CohereEmbeddingService, "embed-english-v3.0"),
}


def get_embedding_service(
    provider: Optional[str] = None,
    config: Optional[SearchConfig] = None,
) -> BaseEmbeddingService:
    """
    Factory function to get the configured embedding service.

    Args:
        provider: "openai" (default), "voyage" or "cohere"; overrides config
        config: Search configuration carrying model names, keys and cache dir

    Returns:
        Configured embedding service
    """
    config = config or SearchConfig()
    prov = (provider or config.embedding_provider or "openai").lower()
    if prov not in _PROVIDERS:
        logger.warning(f"Unknown embedding provider '{prov}', using openai")
        prov = "openai"

    service_cls, default_model = _PROVIDERS[prov]
    # The configured model name only applies to the provider it was chosen for
    model = config.embedding_model if prov == config.embedding_provider else None

    embedding_config = EmbeddingConfig(
        provider=prov,
        model=model or default_model or config.embedding_model,
        api_key=config.embedding_api_key,
        base_url=config.llm_base_url if prov == "openai" else None,
        batch_size=128 if prov == "voyage" else 96 if prov == "cohere" else 64,
        cache_dir=config.embedding_cache_dir,
    )
    return service_cls(embedding_config)


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    service = get_embedding_service(config=SearchConfig.from_env())

    query = " ".join(sys.argv[1:]) or "What is the penalty for illegal possession of firearms?"
    print(f"Query: {query}")
    embedding = service.embed(query)
    print(f"Embedding dimensions: {len(embedding) if embedding else 0}")
    print(f"First 10 values: {(embedding or [])[:10]}")
