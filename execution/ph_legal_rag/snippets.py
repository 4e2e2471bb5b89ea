"""
Snippet extraction.

Returns a short excerpt of a document that bears on the query, or the
sentinel UNKNOWN_PHRASE. Both paths only ever select text that exists in the
document: the heuristic picks a real sentence, and the LLM path is asked for a
verbatim passage whose presence in the document is then checked.
"""

import re
import logging
from typing import Optional

from .config import SearchConfig
from .json_utils import strip_code_fences
from .legal_patterns import (
    EDGE_QUOTES_PATTERN,
    LLM_PROMPTS,
    PUNCTUATION_ONLY_PATTERN,
    SENTENCE_PATTERN,
    SNIPPET_REFUSAL_PATTERN,
)

logger = logging.getLogger(__name__)

UNKNOWN_PHRASE = "Insufficient information"


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _truncate(snippet: str, max_chars: int) -> str:
    return snippet[:max_chars] + "..." if len(snippet) > max_chars else snippet


def split_sentences(text: str) -> list[str]:
    return SENTENCE_PATTERN.findall(text)


def query_keywords(query: str) -> list[str]:
    """Lowercased query words longer than three characters."""
    return [w for w in (query or "").lower().split() if len(w) > 3]


def heuristic_snippet(text: Optional[str], query: str, max_chars: int = 300) -> str:
    """
    The single sentence containing the most query keywords.

    Earlier sentences win ties. Returns the sentinel when there are no
    sentences or no sentence contains any keyword.
    """
    if not text:
        return UNKNOWN_PHRASE
    sentences = split_sentences(text)
    if not sentences:
        logger.debug("No sentences found; returning sentinel")
        return UNKNOWN_PHRASE

    keywords = query_keywords(query)
    best_score = 0
    best_sentence = None
    for sentence in sentences:
        lower = sentence.lower()
        score = sum(1 for w in keywords if w in lower)
        if score > best_score:
            best_score = score
            best_sentence = sentence.strip()

    if best_sentence is None:
        logger.debug("No keyword matches; returning sentinel")
        return UNKNOWN_PHRASE
    return _truncate(best_sentence, max_chars)


def chunk_text(text: str, size: int, overlap: int, max_chunks: int) -> list[str]:
    """Overlapping fixed-size chunks, capped at ``max_chunks``."""
    step = max(1, size - overlap)
    chunks = [text[i:i + size] for i in range(0, len(text), step)]
    if len(chunks) > max_chunks:
        logger.info(f"Chunk count {len(chunks)} exceeds {max_chunks}, truncating")
        chunks = chunks[:max_chunks]
    return chunks


def clean_llm_snippet(raw: str) -> str:
    """Unwrap code fences, strip edge quotes, collapse whitespace."""
    candidate = strip_code_fences(raw)
    candidate = EDGE_QUOTES_PATTERN.sub("", candidate).strip()
    return _collapse(candidate)


def format_snippet(snippet: str) -> str:
    """Normalise whitespace and quote spacing for display."""
    if snippet == UNKNOWN_PHRASE:
        return snippet
    out = _collapse(snippet)
    out = re.sub(r"([.!?])\s+\.\.\.", r"\1", out)
    out = re.sub(r'"\s+', '"', out)
    out = re.sub(r'\s+"', '"', out)
    return out


class SnippetExtractor:
    """Heuristic snippet extraction with an optional LLM-assisted path."""

    def __init__(self, config: Optional[SearchConfig] = None, llm=None):
        self.config = config or SearchConfig()
        self.llm = llm

    def extract_with_llm(self, text: str, query: str) -> str:
        """
        Ask the model for a verbatim passage, chunk by chunk.

        Stops at the first non-empty reply. A failing chunk is skipped. The
        cleaned reply is rejected (sentinel) when it denies relevance, is
        only punctuation, or does not occur in the document.
        """
        if not text or not text.strip() or self.llm is None:
            return UNKNOWN_PHRASE

        max_chars = self.config.snippet_max_chars
        chunks = chunk_text(
            text,
            self.config.snippet_chunk_size,
            self.config.snippet_chunk_overlap,
            self.config.snippet_max_chunks,
        )

        candidate = ""
        for idx, chunk in enumerate(chunks):
            try:
                reply = self.llm.complete(
                    LLM_PROMPTS["snippet_system"],
                    LLM_PROMPTS["snippet_user"].format(query=query, chunk=chunk, max_chars=max_chars),
                    model=self.config.snippet_model,
                    temperature=0.0,
                    max_tokens=200,
                )
            except Exception as e:
                logger.warning(f"Snippet chunk {idx + 1}/{len(chunks)} failed: {e}")
                continue
            if reply and reply.strip():
                candidate = reply.strip()
                break

        if not candidate:
            return UNKNOWN_PHRASE

        candidate = clean_llm_snippet(candidate)
        if not candidate or SNIPPET_REFUSAL_PATTERN.search(candidate):
            return UNKNOWN_PHRASE
        if PUNCTUATION_ONLY_PATTERN.match(candidate):
            return UNKNOWN_PHRASE
        if candidate.lower() not in _collapse(text).lower():
            logger.info("LLM snippet not found verbatim in document; discarding")
            return UNKNOWN_PHRASE

        return candidate[:max_chars].strip()

    def extract(self, text: Optional[str], query: str, use_llm: Optional[bool] = None) -> str:
        """
        Most relevant excerpt (<= snippet_max_chars, plus "..." when cut) or the sentinel.

        Args:
            text: Document body (None/blank gives the sentinel)
            query: User query
            use_llm: Override config.use_llm_snippet
        """
        if not text or not text.strip():
            return UNKNOWN_PHRASE

        max_chars = self.config.snippet_max_chars
        if use_llm is None:
            use_llm = self.config.use_llm_snippet

        if use_llm and self.llm is not None and split_sentences(text):
            snippet = self.extract_with_llm(text, query)
            if snippet != UNKNOWN_PHRASE:
                return _truncate(snippet, max_chars)
            logger.debug("LLM returned no reliable snippet; using heuristics")

        return heuristic_snippet(text, query, max_chars)
