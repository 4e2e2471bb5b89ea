"""
Citation Tokens and Result Assembly

Source tokens tie a displayed citation back to a stored document:

    identifier:<uuid>/<filename stem>.txt

The same string is the display citation and the file-fetch key. Older
answers may carry the ``_FILE_:`` or ``FILE:`` prefixes; those still parse.

ResultAssembler turns scored matches into deduplicated, cited sources and
never emits a token for a match whose snippet is the sentinel.
"""

import re
import logging
from typing import Optional
from dataclasses import dataclass, asdict
from concurrent.futures import ThreadPoolExecutor

from .config import SearchConfig
from .law_names import extract_law_name, format_law_name
from .legal_patterns import CITATION_PATTERNS
from .snippets import UNKNOWN_PHRASE, SnippetExtractor, format_snippet

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "identifier:"
_TOKEN_PATTERN = re.compile(r"^\s*(?:identifier:|_FILE_:|FILE:)/*([^/\s]+)/(.+?)\s*$", re.IGNORECASE)
_MALFORMED_LINK = re.compile(r"\(\s*((?:identifier:|_FILE_:|FILE:)[^)\]]+)\]", re.IGNORECASE)
_MARKDOWN_LINK = re.compile(r"\[([^\]]*?)\]\(([^)]+)\)")


@dataclass(frozen=True)
class SourceToken:
    """Parsed source token."""
    uuid: str
    filename: str  # stem, without extension

    def __str__(self) -> str:
        return format_source_token(self.uuid, self.filename)


def _stem(filename: str) -> str:
    return filename[:-4] if filename.lower().endswith(".txt") else filename


def format_source_token(uuid: str, filename: str) -> str:
    """``identifier:<uuid>/<stem>.txt``"""
    return f"{TOKEN_PREFIX}{uuid}/{_stem(filename)}.txt"


def parse_source_token(token: Optional[str]) -> Optional[SourceToken]:
    """Parse a canonical or legacy token; None if it does not have that shape."""
    if not token:
        return None
    m = _TOKEN_PATTERN.match(token.split("#")[0])
    if not m:
        return None
    filename = _stem(m.group(2))
    if not filename:
        return None
    return SourceToken(uuid=m.group(1), filename=filename)


def renumber_citations(text: Optional[str], ordered_tokens: list[str]) -> Optional[str]:
    """
    Rewrite ``[label](token)`` links so the label is the token's 1-based
    position in ``ordered_tokens``.

    Legacy prefixes and a stray ``]`` closing a ``(token`` are normalised
    first. Links to unknown tokens are left untouched.
    """
    if not text or not ordered_tokens:
        return text

    index = {}
    for i, token in enumerate(ordered_tokens, 1):
        parsed = parse_source_token(token)
        key = str(parsed) if parsed else token
        index.setdefault(key, i)

    out = _MALFORMED_LINK.sub(r"(\1)", text)

    def replace(match: re.Match) -> str:
        href = match.group(2)
        parsed = parse_source_token(href)
        position = index.get(str(parsed)) if parsed else index.get(href.strip())
        if position is None:
            return match.group(0)
        return f"[{position}]({href})"

    return _MARKDOWN_LINK.sub(replace, out)


def extract_citations(text: Optional[str]) -> list[str]:
    """
    Statute and case identifiers mentioned in a document body.

    Returns unique matches ("Republic Act No. 9262", "G.R. No. 100264") in
    first-seen order, grouped by pattern.
    """
    if not text:
        return []
    found = []
    for pattern in CITATION_PATTERNS:
        for match in pattern.finditer(text):
            citation = match.group(0).strip()
            if citation not in found:
                found.append(citation)
    return found


@dataclass
class CitedSource:
    """A surfaced, citable result."""
    uuid: str
    filename: str
    token: str
    law_name: str
    snippet: str
    relevance_score: float
    date: Optional[str] = None
    found_via_citation: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class ResultAssembler:
    """
    Builds the final cited result list.

    Steps:
    1. Deduplicate by uuid, first occurrence wins
    2. Extract a snippet per remaining match (bounded parallelism)
    3. Drop matches whose snippet is the sentinel
    4. Attach law name and source token
    """

    def __init__(self, extractor: SnippetExtractor, config: Optional[SearchConfig] = None):
        self.extractor = extractor
        self.config = config or SearchConfig()

    def _snippet(self, args) -> str:
        text, query = args
        return format_snippet(self.extractor.extract(text, query))

    def assemble(self, scored: list, query: str) -> list[CitedSource]:
        """
        Args:
            scored: ScoredMatch list in ranking order
            query: User query

        Returns:
            CitedSource list in the same order, without duplicates or sentinels
        """
        unique = []
        seen = set()
        for match in scored:
            if match.uuid in seen:
                logger.debug(f"Dropping duplicate match {match.uuid}")
                continue
            seen.add(match.uuid)
            unique.append(match)

        if not unique:
            return []

        jobs = [(m.text, query) for m in unique]
        workers = min(self.config.load_concurrency, len(jobs))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                snippets = list(executor.map(self._snippet, jobs))
        else:
            snippets = [self._snippet(job) for job in jobs]

        sources = []
        for match, snippet in zip(unique, snippets):
            candidate = match.candidate
            if snippet == UNKNOWN_PHRASE or not snippet:
                logger.info(f"Skipping {candidate.filename or candidate.uuid}: no reliable snippet")
                continue
            if not candidate.filename:
                logger.info(f"Skipping {candidate.uuid}: no filename for a source token")
                continue
            candidate_date = candidate.date.isoformat() if hasattr(candidate.date, "isoformat") else candidate.date
            sources.append(CitedSource(
                uuid=candidate.uuid,
                filename=candidate.filename,
                token=format_source_token(candidate.uuid, candidate.filename),
                law_name=format_law_name(extract_law_name(candidate.text)),
                snippet=snippet,
                relevance_score=match.relevance_score,
                date=candidate_date,
                found_via_citation=candidate.found_via_citation,
            ))

        logger.info(f"Assembled {len(sources)}/{len(unique)} cited source(s)")
        return sources
