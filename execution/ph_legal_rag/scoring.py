"""
Relevance scoring for candidate matches.

relevance = semantic_weight * exp(-distance) + keyword_weight * keyword overlap

Pure functions only: no I/O, no randomness.
"""

import math
from typing import Iterable, Optional
from dataclasses import dataclass

from .retriever import Candidate


@dataclass
class ScoredMatch:
    """A candidate with its three scores."""
    candidate: Candidate
    semantic_score: float
    keyword_score: float
    relevance_score: float

    @property
    def uuid(self) -> str:
        return self.candidate.uuid

    @property
    def text(self) -> Optional[str]:
        return self.candidate.text

    def to_dict(self) -> dict:
        data = self.candidate.to_dict()
        data.update({
            "semantic_score": self.semantic_score,
            "keyword_score": self.keyword_score,
            "relevance_score": self.relevance_score,
        })
        return data


def keyword_match(text: Optional[str], query: Optional[str]) -> float:
    """
    Fraction of query words (longer than 2 chars) found as substrings of the text.

    Returns 0.0 when the text is missing or the query has no qualifying words.
    """
    if not text or not query:
        return 0.0
    words = [w for w in query.lower().split() if len(w) > 2]
    if not words:
        return 0.0
    text_lower = text.lower()
    hits = sum(1 for w in words if w in text_lower)
    return hits / len(words)


def distance_to_similarity(distance: Optional[float]) -> float:
    """exp(-distance); a missing distance (title hit) counts as identical."""
    if distance is None:
        return 1.0
    return math.exp(-max(0.0, float(distance)))


def score_matches(
    matches: Iterable[Candidate],
    query: str,
    max_results: int,
    semantic_weight: float = 0.7,
    keyword_weight: float = 0.3,
    min_relevance: float = 0.2,
) -> list[ScoredMatch]:
    """
    Score, filter (relevance > min_relevance), sort descending and truncate.

    Ties keep their input order.
    """
    scored = []
    for match in matches:
        semantic = distance_to_similarity(match.distance)
        keyword = keyword_match(match.text, query)
        relevance = semantic * semantic_weight + keyword * keyword_weight
        if relevance > min_relevance:
            scored.append(ScoredMatch(match, semantic, keyword, relevance))

    scored.sort(key=lambda m: m.relevance_score, reverse=True)
    return scored[:max(0, max_results)]
