"""
Document and Embedding Store with PostgreSQL + pgvector

Read-only access to the ingested corpus: the ``documents`` metadata table
(uuid, filename, relative_path, title, date, category) joined 1:1 to the
``embeddings`` table (uuid, embedding). Provides the title-lookup queries
used by the resolver cascade and ordered nearest-neighbour search.

No operation here retries. Every psycopg2 error is rolled back, logged
with its query label and re-raised as StoreQueryFailed. Connections lost
to the server are closed rather than returned to the pool.
"""

import logging
from typing import Optional, Sequence
from dataclasses import dataclass
from contextlib import contextmanager

import psycopg2
import psycopg2.pool
from psycopg2.extras import RealDictCursor

from .config import SearchConfig, VALID_DISTANCE_OPERATORS
from .exceptions import StoreQueryFailed

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_STRING = "postgresql://localhost:5432/ph_legal_rag"

# Columns every lookup returns, in order
DOCUMENT_COLUMNS = ["uuid", "filename", "relative_path", "date", "title", "category"]

_SELECT_DOCUMENT = """
    SELECT e.uuid, m.filename, m.relative_path, m.date, m.title, m.category
    FROM {embeddings} e
    LEFT JOIN {documents} m USING (uuid)
"""


@dataclass
class VectorStoreConfig:
    """Configuration for the document/embedding store."""
    connection_string: Optional[str] = None
    documents_table: str = "documents"
    embeddings_table: str = "embeddings"
    # Declared dimension D of every stored embedding (None = unknown)
    embedding_dimensions: Optional[int] = None
    distance_operator: str = "<->"
    # Connection pooling settings
    pool_min_connections: int = 1
    pool_max_connections: int = 10
    use_pooling: bool = True

    @classmethod
    def from_search_config(cls, config: SearchConfig) -> "VectorStoreConfig":
        return cls(
            connection_string=config.database_url,
            embedding_dimensions=config.embedding_dimensions,
            distance_operator=config.distance_operator,
        )


def format_vector(vector: Sequence[float]) -> str:
    """Render a vector as a pgvector literal: ``[0.1,0.2,...]``."""
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


_DISCONNECT_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


def _connection_lost(exc: Exception) -> bool:
    """True if the error, or the database error it wraps, leaves the connection unusable."""
    return isinstance(exc, _DISCONNECT_ERRORS) or isinstance(exc.__cause__, _DISCONNECT_ERRORS)


def _row_to_dict(row, columns: list[str]) -> dict:
    # Handle both RealDictRow and tuple
    row_dict = dict(row) if hasattr(row, "keys") else dict(zip(columns, row))
    if row_dict.get("uuid") is not None:
        row_dict["uuid"] = str(row_dict["uuid"])
    return row_dict


class VectorStore:
    """
    PostgreSQL store with pgvector.

    Features:
    - Exact, normalized-identifier and type+evidence title lookups
    - Ordered nearest-neighbour search with an optional title pre-filter
    - Document metadata lookup by uuid (file serving)
    """

    def __init__(self, config: Optional[VectorStoreConfig] = None):
        self.config = config or VectorStoreConfig()
        if self.config.distance_operator not in VALID_DISTANCE_OPERATORS:
            raise ValueError(f"Unsupported distance operator: {self.config.distance_operator}")
        self._conn = None
        self._pool = None
        self._connection_string = self.config.connection_string or DEFAULT_CONNECTION_STRING

    @property
    def dimensions(self) -> Optional[int]:
        """Declared dimension of stored embeddings."""
        return self.config.embedding_dimensions

    def connect(self) -> None:
        """Establish database connection (with optional pooling)."""
        try:
            if self.config.use_pooling:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.pool_min_connections,
                    maxconn=self.config.pool_max_connections,
                    dsn=self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                logger.info(
                    f"Connection pool initialized (min={self.config.pool_min_connections}, "
                    f"max={self.config.pool_max_connections})"
                )
            else:
                self._conn = psycopg2.connect(
                    self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                self._conn.autocommit = False
                logger.info("Connected to PostgreSQL with pgvector (single connection)")
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise StoreQueryFailed("connect", e) from e

    def _get_connection(self, label: str = "getconn"):
        """Get a database connection (from pool or single connection)."""
        if not self._conn and not self._pool:
            self.connect()
        if self._pool:
            try:
                return self._pool.getconn()
            except psycopg2.pool.PoolError as e:
                logger.error(f"{label} could not get a pooled connection: {e}")
                raise StoreQueryFailed(label, e) from e
        if self._conn.closed:
            logger.warning("Connection closed, reconnecting...")
            self.connect()
        return self._conn

    def _release_connection(self, conn, discard: bool = False):
        """
        Release a connection back to the pool (if pooling is enabled).

        A connection the server dropped is closed instead of reused, so the
        next query opens a fresh one.
        """
        if not conn:
            return
        discard = discard or bool(conn.closed)
        if self._pool:
            self._pool.putconn(conn, close=discard)
        elif discard:
            logger.warning("Discarding broken connection")
            if not conn.closed:
                conn.close()
            self._conn = None

    @contextmanager
    def get_connection(self, label: str = "getconn"):
        """
        Context manager for getting a database connection.

        Usage:
            with store.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")

        Automatically releases connection back to pool when done.
        """
        conn = self._get_connection(label)
        lost = False
        try:
            yield conn
        except (psycopg2.Error, StoreQueryFailed) as e:
            lost = _connection_lost(e)
            raise
        finally:
            self._release_connection(conn, discard=lost)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            logger.debug("Rollback skipped on dead connection")

    def run(self, operation, label: str = "db_operation"):
        """
        Execute a DB operation once.

        Args:
            operation: Callable(conn) that performs the DB work and returns a result.
            label: Human-readable name for logging and the raised error.

        Raises:
            StoreQueryFailed: on any psycopg2 error (after rollback)
        """
        with self.get_connection(label) as conn:
            try:
                return operation(conn)
            except psycopg2.Error as e:
                self._safe_rollback(conn)
                logger.error(f"{label} failed: {e}")
                raise StoreQueryFailed(label, e) from e

    def close(self) -> None:
        """Close database connection(s)."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
        if self._conn:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Queries
    # =========================================================================

    def _select_documents(self) -> str:
        return _SELECT_DOCUMENT.format(
            embeddings=self.config.embeddings_table,
            documents=self.config.documents_table,
        )

    def _fetch(self, sql: str, params: list, label: str, columns: list[str]) -> list[dict]:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            conn.commit()
            return [_row_to_dict(row, columns) for row in rows]

        return self.run(_op, label)

    def find_by_exact_title(self, title: str, k: int) -> list[dict]:
        """Rows whose trimmed title equals the trimmed variant (case-sensitive)."""
        sql = self._select_documents() + """
        WHERE trim(m.title) = trim(%s)
        LIMIT %s
        """
        return self._fetch(sql, [title, k], "exact_title_lookup", DOCUMENT_COLUMNS)

    def find_by_normalized_title(self, title: str, k: int) -> list[dict]:
        """Rows whose title matches after stripping dots/whitespace, case-insensitive."""
        sql = self._select_documents() + """
        WHERE lower(regexp_replace(m.title, '[.\\s]+', '', 'g'))
            = lower(regexp_replace(%s, '[.\\s]+', '', 'g'))
        LIMIT %s
        """
        return self._fetch(sql, [title, k], "normalized_title_lookup", DOCUMENT_COLUMNS)

    def find_by_type_evidence(self, doc_type: str, evidence: str, k: int) -> list[dict]:
        """Rows whose category matches the type and whose filename matches the evidence."""
        sql = self._select_documents() + """
        WHERE (COALESCE(m.category::text, '') ILIKE %s
               OR COALESCE(m.category::text, '') ILIKE '%%' || %s || '%%')
          AND (COALESCE(m.filename::text, '') ILIKE %s)
        LIMIT %s
        """
        return self._fetch(
            sql, [doc_type, doc_type, evidence, k], "type_evidence_lookup", DOCUMENT_COLUMNS
        )

    def nearest(
        self,
        vector: Sequence[float],
        k: int,
        title_filter: Optional[str] = None,
    ) -> list[dict]:
        """
        Nearest neighbours by ascending distance under the configured operator.

        Args:
            vector: Query vector, already reconciled to the store dimension
            k: Maximum rows
            title_filter: Optional case-insensitive title substring pre-filter

        Returns:
            Row dicts with a ``distance`` key
        """
        op = self.config.distance_operator
        literal = format_vector(vector)
        where_clause = ""
        params: list = [literal]
        if title_filter:
            where_clause = "WHERE m.title ILIKE '%%' || %s || '%%'"
            params.append(title_filter)
        params.extend([literal, k])

        sql = f"""
        SELECT e.uuid, m.filename, m.relative_path, m.date, m.title, m.category,
               e.embedding {op} %s::vector AS distance
        FROM {self.config.embeddings_table} e
        LEFT JOIN {self.config.documents_table} m USING (uuid)
        {where_clause}
        ORDER BY e.embedding {op} %s::vector
        LIMIT %s
        """
        rows = self._fetch(sql, params, "vector_search", DOCUMENT_COLUMNS + ["distance"])
        for row in rows:
            if row.get("distance") is not None:
                row["distance"] = float(row["distance"])
        return rows

    def get_document(self, uuid: str) -> Optional[dict]:
        """Metadata for one document, or None if the uuid is unknown."""
        sql = f"""
        SELECT uuid, filename, relative_path, date, title, category
        FROM {self.config.documents_table}
        WHERE uuid::text = %s
        LIMIT 1
        """
        rows = self._fetch(sql, [uuid], "get_document", DOCUMENT_COLUMNS)
        return rows[0] if rows else None
