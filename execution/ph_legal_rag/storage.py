"""
Corpus file storage.

Document bodies live on disk at ``<corpus>/<relative_path>/<filename>.txt``.
Loads are independent and I/O bound, so load_texts() overlaps them with a
small thread pool while keeping the caller's order.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional
from concurrent.futures import ThreadPoolExecutor

from .citation import parse_source_token
from .exceptions import FileLoadFailed, PathOutsideCorpus

logger = logging.getLogger(__name__)


def document_filename(filename: str) -> str:
    """Stored filenames carry no extension; bodies are always ``.txt``."""
    return filename if filename.lower().endswith(".txt") else f"{filename}.txt"


class CorpusStorage:
    """Read-only access to document bodies under one corpus root."""

    def __init__(self, root: str, load_concurrency: int = 6):
        self.root = Path(root)
        self.load_concurrency = max(1, load_concurrency)

    def path_for(self, relative_path: Optional[str], filename: str) -> Path:
        """
        Resolve the on-disk path of a document body.

        Raises:
            PathOutsideCorpus: the resolved path escapes the corpus root
        """
        root = self.root.resolve()
        path = (root / (relative_path or "") / document_filename(filename)).resolve()
        if root != path and root not in path.parents:
            raise PathOutsideCorpus(str(path))
        return path

    def read_text(self, relative_path: Optional[str], filename: Optional[str]) -> str:
        """
        Read one document body.

        Raises:
            FileLoadFailed: missing filename, missing file or I/O error
            PathOutsideCorpus: traversal attempt
        """
        if not filename:
            raise FileLoadFailed(f"{relative_path}/<no filename>")
        path = self.path_for(relative_path, filename)
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileLoadFailed(str(path), e) from e

    def _load_or_none(self, row: dict) -> Optional[str]:
        try:
            return self.read_text(row.get("relative_path"), row.get("filename"))
        except FileLoadFailed as e:
            logger.debug(f"Body unavailable for {row.get('uuid')}: {e}")
            return None

    def load_texts(self, rows: Iterable[dict]) -> list[Optional[str]]:
        """
        Load bodies for many rows with bounded parallelism.

        Returns:
            One entry per row, in row order; None where the load failed
        """
        rows = list(rows)
        if not rows:
            return []
        if len(rows) == 1 or self.load_concurrency == 1:
            return [self._load_or_none(row) for row in rows]

        with ThreadPoolExecutor(max_workers=min(self.load_concurrency, len(rows))) as executor:
            return list(executor.map(self._load_or_none, rows))

    def read_document(self, store, uuid: str) -> str:
        """
        Read a document body by uuid via its stored metadata.

        Raises:
            FileLoadFailed: unknown uuid or unreadable body
            StoreQueryFailed: the metadata lookup failed
        """
        row = store.get_document(uuid)
        if not row:
            raise FileLoadFailed(f"document {uuid}")
        return self.read_text(row.get("relative_path"), row.get("filename"))

    def resolve_token(self, store, token: str) -> str:
        """
        Resolve a source token (``identifier:<uuid>/<stem>.txt``) to its body.

        Raises:
            FileLoadFailed: malformed token, unknown uuid or unreadable body
        """
        parsed = parse_source_token(token)
        if parsed is None:
            raise FileLoadFailed(token)
        return self.read_document(store, parsed.uuid)
