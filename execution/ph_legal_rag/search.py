"""
Search Service

The entry point callers use: one query in, cited sources and a markdown
answer out.

Pipeline:
    1. Title-lookup decision (pattern table, optional LLM recall boost)
    2. Candidate retrieval (title cascade or vector search)
    3. Optional citation follow-up: statutes/cases cited by the candidates
    4. Relevance scoring and filtering
    5. Snippet extraction and result assembly (sentinel matches dropped)
    6. Optional LLM interpretation that narrows and summarises the sources

A query with no reliable sources gets a "no relevant documents" answer, not
an error. Store failures and dimension mismatches propagate.
"""

import json
import logging
from typing import Any, Optional
from dataclasses import dataclass, field

from .citation import CitedSource, ResultAssembler, extract_citations
from .config import SearchConfig
from .json_utils import parse_json_object
from .legal_patterns import LLM_PROMPTS
from .retriever import Candidate, LegalRetriever
from .scoring import ScoredMatch, score_matches
from .snippets import SnippetExtractor
from .title_resolver import TitleLookupClassifier

logger = logging.getLogger(__name__)

NO_DOCUMENTS = "No relevant documents found."
NO_DOCUMENTS_AFTER_FILTERING = "No relevant documents found after filtering."


@dataclass
class Interpretation:
    """What the model recommended, already mapped onto source positions."""
    raw: str
    parsed: Optional[Any]
    brief: str
    recommended: list[int] = field(default_factory=list)  # 0-based, ascending


@dataclass
class SearchResponse:
    """Result of one search."""
    matches: list[Candidate]
    answer: str
    sources: list[CitedSource] = field(default_factory=list)
    interpretation: Optional[Interpretation] = None

    @property
    def tokens(self) -> list[str]:
        return [s.token for s in self.sources]

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
            "brief": self.interpretation.brief if self.interpretation else None,
        }


def render_source(source: CitedSource) -> str:
    return f'### {source.law_name}\n\n"{source.snippet}"\n\n[View Document]({source.token})'


def render_answer(sources: list[CitedSource], brief: Optional[str] = None) -> str:
    """Markdown answer: optional brief summary, then one block per source."""
    details = "\n\n---\n\n".join(render_source(s) for s in sources)
    if brief:
        return f"## Brief Summary\n\n{brief}\n\n{details}"
    return details


def _document_listing(sources: list[CitedSource]) -> str:
    return "\n---\n".join(
        f"DOCUMENT {i}\nLaw: {s.law_name}\nScore: {s.relevance_score:.3f}\n"
        f"Snippet: {s.snippet}\nURL: {s.token}\n"
        for i, s in enumerate(sources, 1)
    )


def map_recommendations(sources: list[CitedSource], parsed: Optional[Any]) -> list[int]:
    """
    0-based positions the model recommended.

    Tries, in order: the 1-based ``ranked`` list, ``topDocuments`` entries
    (by index, law name or supporting snippet), then any law name that
    appears anywhere in the parsed reply. Out-of-range positions are ignored.
    """
    if not isinstance(parsed, dict):
        return []
    chosen: set[int] = set()

    for raw_index in parsed.get("ranked") or []:
        try:
            idx = int(raw_index) - 1
        except (TypeError, ValueError):
            continue
        if 0 <= idx < len(sources):
            chosen.add(idx)
    if chosen:
        return sorted(chosen)

    for doc in parsed.get("topDocuments") or []:
        if not isinstance(doc, dict):
            continue
        index = doc.get("index")
        if isinstance(index, int) and not isinstance(index, bool):
            if 0 <= index - 1 < len(sources):
                chosen.add(index - 1)
        elif isinstance(doc.get("lawName"), str):
            wanted = doc["lawName"].lower()
            for i, s in enumerate(sources):
                if wanted in s.law_name.lower():
                    chosen.add(i)
                    break
        elif isinstance(doc.get("supportingSnippet"), str):
            for i, s in enumerate(sources):
                if doc["supportingSnippet"] in s.snippet:
                    chosen.add(i)
                    break
    if chosen:
        return sorted(chosen)

    serialized = json.dumps(parsed).lower()
    return [i for i, s in enumerate(sources) if s.law_name and s.law_name.lower() in serialized]


def _brief_from(parsed: Optional[Any], raw: str) -> str:
    if isinstance(parsed, dict):
        brief = parsed.get("brief")
        if isinstance(brief, str) and brief.strip():
            return brief.strip()
        top = [d for d in (parsed.get("topDocuments") or []) if isinstance(d, dict)]
        if top:
            parts = []
            for d in top[:3]:
                name = d.get("lawName") or f"Document {d.get('index')}"
                reason = str(d.get("reason") or "recommended").split(".")[0]
                parts.append(f"{name} - {reason}")
            return "; ".join(parts)
    return " ".join(raw.split("\n")[:2]).strip()


class SearchService:
    """
    Retrieval and re-ranking entry point.

    Usage:
        service = SearchService(retriever, SnippetExtractor(config, llm), config, llm)
        response = service.search("RA 9262")
        print(response.answer)
    """

    def __init__(
        self,
        retriever: LegalRetriever,
        extractor: Optional[SnippetExtractor] = None,
        config: Optional[SearchConfig] = None,
        llm=None,
        classifier: Optional[TitleLookupClassifier] = None,
    ):
        self.retriever = retriever
        self.config = config or SearchConfig()
        self.llm = llm
        self.extractor = extractor or SnippetExtractor(self.config, llm)
        self.classifier = classifier or TitleLookupClassifier(self.config, llm)
        self.assembler = ResultAssembler(self.extractor, self.config)

    # ------------------------------------------------------------------
    # Downstream interface
    # ------------------------------------------------------------------

    def score_and_rank(self, matches: list[Candidate], query: str, max_results: int) -> list[ScoredMatch]:
        return score_matches(
            matches,
            query,
            max_results,
            semantic_weight=self.config.semantic_weight,
            keyword_weight=self.config.keyword_weight,
            min_relevance=self.config.min_relevance,
        )

    def extract_snippet(self, text: Optional[str], query: str) -> str:
        return self.extractor.extract(text, query)

    def search(
        self,
        query: Optional[str],
        k: Optional[int] = None,
        search_by_title: Optional[bool] = None,
    ) -> SearchResponse:
        """
        Run the full pipeline for one query.

        Args:
            query: Free-text query
            k: Result bound (defaults to config.max_matches)
            search_by_title: Force or skip the title cascade; None lets the classifier decide
        """
        if not query or not query.strip():
            return SearchResponse([], NO_DOCUMENTS)

        k = k or self.config.max_matches
        if search_by_title is None:
            decision = self.classifier.decide(query)
            search_by_title = decision.is_title
            logger.info(f"Title lookup: {decision.is_title} ({decision.reason}, {decision.source})")

        candidates = self.retriever.search_nearest(query, k, search_by_title=search_by_title)
        logger.info(f"Found {len(candidates)} total matches for '{query[:50]}'")

        if candidates and self.config.follow_citations:
            candidates = self._merge(candidates, self._follow_citations(candidates))

        if not candidates:
            return SearchResponse([], NO_DOCUMENTS)

        scored = self.score_and_rank(candidates, query, k)
        logger.info(f"Ranked {len(scored)} matches by relevance score")
        if not scored:
            return SearchResponse([], NO_DOCUMENTS_AFTER_FILTERING)

        sources = self.assembler.assemble(scored, query)
        if not sources:
            logger.info("No matches with reliable snippets")
            return SearchResponse([], NO_DOCUMENTS)

        interpretation = None
        if self.config.interpret_matches and self.llm is not None:
            interpretation = self.interpret(sources, query)
            if interpretation and interpretation.recommended:
                sources = [sources[i] for i in interpretation.recommended]
                logger.info(f"Filtered to {len(sources)} source(s) per model recommendation")

        by_uuid = {c.uuid: c for c in candidates}
        matches = [by_uuid[s.uuid] for s in sources if s.uuid in by_uuid]
        answer = render_answer(sources, interpretation.brief if interpretation else None)
        return SearchResponse(matches, answer, sources, interpretation)

    # ------------------------------------------------------------------
    # Supplementary stages
    # ------------------------------------------------------------------

    @staticmethod
    def _merge(primary: list[Candidate], extra: list[Candidate]) -> list[Candidate]:
        seen = {c.uuid for c in primary}
        merged = list(primary)
        for candidate in extra:
            if candidate.uuid not in seen:
                seen.add(candidate.uuid)
                merged.append(candidate)
        return merged

    def _follow_citations(self, candidates: list[Candidate]) -> list[Candidate]:
        """Title-search the statutes and cases the candidates cite."""
        citations = []
        for candidate in candidates:
            for citation in extract_citations(candidate.text):
                if citation not in citations:
                    citations.append(citation)

        hits = []
        for citation in citations[:self.config.max_followed_citations]:
            found = self.retriever.search_nearest(
                citation, self.config.matches_per_citation, search_by_title=True
            )
            for hit in found:
                hit.found_via_citation = citation
            hits.extend(found)
            logger.info(f"Found {len(found)} document(s) for citation: {citation}")
        return hits

    def interpret(self, sources: list[CitedSource], query: str) -> Optional[Interpretation]:
        """
        Ask the model which sources best answer the query.

        Returns None when the model call fails.
        """
        model = (
            self.config.interpretation_model_small if len(sources) < 2
            else self.config.interpretation_model
        )
        try:
            raw = self.llm.complete(
                LLM_PROMPTS["interpretation_system"],
                LLM_PROMPTS["interpretation_user"].format(query=query, documents=_document_listing(sources)),
                model=model,
                temperature=0.0,
                max_tokens=600,
            )
        except Exception as e:
            logger.warning(f"Match interpretation failed: {e}. Returning all sources.")
            return None

        parsed = parse_json_object(raw)
        return Interpretation(
            raw=raw,
            parsed=parsed,
            brief=_brief_from(parsed, raw or ""),
            recommended=map_recommendations(sources, parsed),
        )
