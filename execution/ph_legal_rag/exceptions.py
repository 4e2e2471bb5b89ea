"""
Error taxonomy for the Philippine Legal RAG retrieval core.

Structural errors (bad dimensions, store failures) are raised and propagate.
Sparse-data conditions (no embedding, missing file) are raised at the
adapter boundary and caught by the search engine, which shrinks the result
set instead of failing the request.
"""

from typing import Optional


class LegalRagError(Exception):
    """Base class for all retrieval-core errors."""


class DimensionMismatch(LegalRagError):
    """Query and store embedding dimensions differ and downsampling is disabled."""

    def __init__(self, query_dim: int, store_dim: int):
        super().__init__(f"different vector dimensions {query_dim} and {store_dim}")
        self.query_dim = query_dim
        self.store_dim = store_dim


class EmbeddingUnavailable(LegalRagError):
    """The embedding provider failed or returned no vector."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class StoreQueryFailed(LegalRagError):
    """A database / vector-store query failed."""

    def __init__(self, label: str, cause: Optional[Exception] = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{label} failed{detail}")
        self.label = label
        self.cause = cause


class FileLoadFailed(LegalRagError):
    """A document body could not be read from corpus storage."""

    def __init__(self, path: str, cause: Optional[Exception] = None):
        super().__init__(f"could not load {path}")
        self.path = path
        self.cause = cause


class PathOutsideCorpus(FileLoadFailed):
    """A stored relative_path/filename resolves outside the corpus root."""

    def __init__(self, path: str):
        super().__init__(path)
        self.args = (f"{path} resolves outside the corpus root",)


class RateLimitExceeded(LegalRagError):
    """The daily request limit has been reached."""

    def __init__(self, limit: int):
        super().__init__(
            f"Daily Search request limit reached ({limit} requests/day). "
            "Please try again tomorrow."
        )
        self.limit = limit
