"""
Shared fixtures and test utilities for the Philippine Legal RAG tests.

Provides a deterministic embedding service, an in-memory document store that
follows the SQL semantics of the real lookups, a scripted LLM, and a small
corpus written to a temporary directory, so that all tests run without API
keys, databases, or network access.
"""

import re
import sys
import math
import time
import hashlib
import threading
from datetime import date
from pathlib import Path

import pytest
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

# ---------------------------------------------------------------------------
# Sample corpus
# ---------------------------------------------------------------------------

RA_9262_TEXT = """Republic Act No. 9262
AN ACT DEFINING VIOLENCE AGAINST WOMEN AND THEIR CHILDREN, PROVIDING FOR PROTECTIVE MEASURES FOR VICTIMS, PRESCRIBING PENALTIES THEREFORE, AND FOR OTHER PURPOSES

Section 1. Short Title. This Act shall be known as the Anti-Violence Against Women and Their Children Act of 2004.
Section 3. Definition of Terms. Violence against women and their children refers to any act or a series of acts committed by any person against a woman who is his wife or former wife.
Section 5. Acts of Violence. The crime of violence against women and their children is committed through any of the following acts.
"""

RA_1061_TEXT = """REPUBLIC ACT NO. 1061
AN ACT TO AMEND COMMONWEALTH ACT NUMBERED FOUR HUNDRED FORTY-FOUR, KNOWN AS THE EIGHT-HOUR LABOR LAW.

Section 1. Section one of the Eight-Hour Labor Law is hereby amended. Overtime work shall be compensated at the prescribed rate.
"""

GR_TEXT = """Republic of the Philippines
SUPREME COURT
Manila

FIRST DIVISION

G.R. No. 100264-81 January 29, 1993

PEOPLE OF THE PHILIPPINES, plaintiff-appellee, vs. JUAN SANTOS, accused-appellant.

D E C I S I O N

The accused was charged under Republic Act No. 9262 for acts of psychological violence. The trial court convicted the accused and this appeal followed.
"""

MARITIME_TEXT = """G.R. No. 55555 March 1, 2001

SULPICIO LINES, petitioner, vs. COURT OF APPEALS, respondent.

The common carrier is liable for negligence in maritime contracts of carriage. Negligence in the performance of maritime contracts gives rise to liability for damages. The petition is denied.
"""


def doc_uuid(n: int) -> str:
    return f"00000000-0000-0000-0000-{n:012d}"


def title_embedding(text: str, dimensions: int = 4) -> list[float]:
    h = hashlib.sha256(text.encode()).hexdigest()
    seed = int(h[:8], 16)
    return [((seed + i * 97) % 1000) / 1000.0 for i in range(dimensions)]


def make_document(n, title, filename, text, relative_path="statutes", day=None, category=None):
    """One document row plus its body; ``text=None`` means no file on disk."""
    return {
        "uuid": doc_uuid(n),
        "filename": filename,
        "relative_path": relative_path,
        "date": day,
        "title": title,
        "category": category,
        "text": text,
        "embedding": title_embedding(title),
    }


def write_corpus(root: Path, documents: list[dict]) -> Path:
    for doc in documents:
        if doc.get("text") is None:
            continue
        folder = root / (doc["relative_path"] or "")
        folder.mkdir(parents=True, exist_ok=True)
        (folder / f"{doc['filename']}.txt").write_text(doc["text"], encoding="utf-8")
    return root


@pytest.fixture
def sample_documents():
    return [
        make_document(1, "Republic Act No. 9262", "ra_9262_2004", RA_9262_TEXT,
                      "statutes/2004", date(2004, 3, 8), "Republic Act"),
        make_document(2, "REPUBLIC ACT NO. 1061", "ra_1061_1954", RA_1061_TEXT,
                      "statutes/1954", date(1954, 6, 5), "Republic Act"),
        make_document(3, "People v. Santos", "100264-81", GR_TEXT,
                      "jurisprudence/1993", date(1993, 1, 29), "G.R."),
        make_document(4, "Sulpicio Lines v. Court of Appeals", "gr_55555_2001", MARITIME_TEXT,
                      "jurisprudence/2001", date(2001, 3, 1), "G.R."),
        # Metadata row whose body was never written to the corpus
        make_document(5, "Executive Order No. 292", "eo_292_1987", None,
                      "statutes/1987", date(1987, 7, 25), "Executive Order"),
    ]


@pytest.fixture
def corpus_dir(tmp_path, sample_documents):
    return write_corpus(tmp_path / "corpus", sample_documents)


class LoadGauge:
    """Wraps CorpusStorage.read_text with a slow, counting version to record peak overlap."""

    def __init__(self, original, delay=0.05):
        self._original = original
        self._delay = delay
        self._lock = threading.Lock()
        self._active = 0
        self.peak = 0
        self.calls = 0

    def wrapped(self):
        gauge = self

        def read_text(storage, relative_path, filename):
            with gauge._lock:
                gauge._active += 1
                gauge.calls += 1
                gauge.peak = max(gauge.peak, gauge._active)
            try:
                time.sleep(gauge._delay)
                return gauge._original(storage, relative_path, filename)
            finally:
                with gauge._lock:
                    gauge._active -= 1

        return read_text


# ---------------------------------------------------------------------------
# Mock embedding service
# ---------------------------------------------------------------------------

class MockEmbeddingService:
    """Deterministic mock embedding service -- never calls external APIs."""

    def __init__(self, dimensions=8):
        self._dimensions = dimensions
        self._call_count = 0

    def embed(self, text):
        self._call_count += 1
        if not text or not text.strip():
            return None
        return self._deterministic_embedding(text)

    def embed_query(self, query):
        return self.embed(query)

    def embed_documents(self, texts):
        return [self._deterministic_embedding(t) for t in texts]

    def _deterministic_embedding(self, text):
        return title_embedding(text, self._dimensions)

    @property
    def call_count(self):
        return self._call_count

    @property
    def dimensions(self):
        return self._dimensions


@pytest.fixture
def mock_embedding_service():
    return MockEmbeddingService(dimensions=8)


# ---------------------------------------------------------------------------
# In-memory document store
# ---------------------------------------------------------------------------

_ROW_KEYS = ("uuid", "filename", "relative_path", "date", "title", "category")


def _normalize_title(value):
    return re.sub(r"[.\s]+", "", value or "").lower()


class MockDocumentStore:
    """
    In-memory stand-in for VectorStore.

    Lookups follow the SQL: trimmed equality, dot/space-insensitive
    equality, category/filename ILIKE, and L2 ordering with an optional
    case-insensitive title substring filter. Every call is recorded.
    """

    def __init__(self, documents=None, dimensions=4):
        self.documents = list(documents or [])
        self._dimensions = dimensions
        self.calls = []
        self.nearest_vectors = []

    @property
    def dimensions(self):
        return self._dimensions

    @property
    def lookup_calls(self):
        return [name for name, _ in self.calls if name != "nearest"]

    @staticmethod
    def _row(doc, distance=None):
        row = {key: doc.get(key) for key in _ROW_KEYS}
        if distance is not None:
            row["distance"] = distance
        return row

    def find_by_exact_title(self, title, k):
        self.calls.append(("exact", title))
        hits = [d for d in self.documents if (d.get("title") or "").strip() == title.strip()]
        return [self._row(d) for d in hits[:k]]

    def find_by_normalized_title(self, title, k):
        self.calls.append(("normalized", title))
        wanted = _normalize_title(title)
        hits = [d for d in self.documents if d.get("title") and _normalize_title(d["title"]) == wanted]
        return [self._row(d) for d in hits[:k]]

    def find_by_type_evidence(self, doc_type, evidence, k):
        self.calls.append(("type_evidence", (doc_type, evidence)))
        hits = []
        for d in self.documents:
            category = (d.get("category") or "").lower()
            if category != doc_type.lower() and doc_type.lower() not in category:
                continue
            if (d.get("filename") or "").lower() != evidence.lower():
                continue
            hits.append(d)
        return [self._row(d) for d in hits[:k]]

    def nearest(self, vector, k, title_filter=None):
        self.calls.append(("nearest", title_filter))
        self.nearest_vectors.append(list(vector))
        docs = self.documents
        if title_filter:
            docs = [d for d in docs if title_filter.lower() in (d.get("title") or "").lower()]
        scored = []
        for d in docs:
            if len(d["embedding"]) != len(vector):
                raise ValueError(
                    f"different vector dimensions {len(vector)} and {len(d['embedding'])}"
                )
            distance = math.sqrt(sum((a - b) ** 2 for a, b in zip(vector, d["embedding"])))
            scored.append((distance, d))
        scored.sort(key=lambda pair: pair[0])
        return [self._row(d, distance) for distance, d in scored[:k]]

    def get_document(self, uuid):
        self.calls.append(("get_document", uuid))
        for d in self.documents:
            if d["uuid"] == uuid:
                return self._row(d)
        return None


@pytest.fixture
def document_store(sample_documents):
    return MockDocumentStore(sample_documents, dimensions=4)


# ---------------------------------------------------------------------------
# Scripted LLM
# ---------------------------------------------------------------------------

class ScriptedLLM:
    """
    LLM double that replays scripted replies.

    Each reply is a string, an Exception instance (raised), or a callable
    taking (system_prompt, user_prompt) and returning a string. The last
    reply repeats once the script runs out.
    """

    def __init__(self, *replies):
        self.replies = list(replies) or [""]
        self.calls = []

    def complete(self, system_prompt, user_prompt, model=None, temperature=0.0, max_tokens=200):
        self.calls.append({
            "system": system_prompt,
            "user": user_prompt,
            "model": model,
            "max_tokens": max_tokens,
        })
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt)
        return reply


# ---------------------------------------------------------------------------
# Wired components
# ---------------------------------------------------------------------------

@pytest.fixture
def search_config(corpus_dir):
    from execution.ph_legal_rag.config import SearchConfig
    return SearchConfig(corpus_path=str(corpus_dir), load_concurrency=2)


@pytest.fixture
def corpus_storage(corpus_dir):
    from execution.ph_legal_rag.storage import CorpusStorage
    return CorpusStorage(str(corpus_dir), load_concurrency=2)


@pytest.fixture
def retriever(document_store, mock_embedding_service, corpus_storage, search_config):
    from execution.ph_legal_rag.retriever import LegalRetriever
    return LegalRetriever(document_store, mock_embedding_service, corpus_storage, search_config)
