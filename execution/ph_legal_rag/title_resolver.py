"""
Title/Identifier Resolver

Decides whether a query names a specific law, case or issuance ("RA 1061",
"G.R. No. 100264-81", "A.M. No. 01-2-04-SC") and, if so, tries increasingly
permissive exact lookups before any embedding is computed:

    1. exact        trimmed title equality
    2. normalized   equality after stripping dots/whitespace, case-insensitive
    3. type_evidence  category ~ type AND filename ~ evidence
    4. substring    no rows; the vector search gets an ILIKE title filter

The first stage that returns rows ends the cascade.
"""

import re
import logging
from datetime import date, datetime
from typing import Optional
from dataclasses import dataclass, field

from .config import SearchConfig
from .legal_patterns import (
    ABBREVIATION_EXPANSIONS,
    BARE_ID_PATTERN,
    FULL_NAME_KEYWORDS,
    INSTRUMENT_PATTERNS,
    LLM_PROMPTS,
    NUMBER_MARKER,
    TRAILING_ID_PATTERN,
    TYPE_EVIDENCE_PATTERN,
)

logger = logging.getLogger(__name__)

STAGE_EXACT = "exact"
STAGE_NORMALIZED = "normalized"
STAGE_TYPE_EVIDENCE = "type_evidence"
STAGE_SUBSTRING = "substring"


# =============================================================================
# Title-lookup decision
# =============================================================================

@dataclass
class TitleDecision:
    """Outcome of the title-lookup decision."""
    is_title: bool
    reason: str
    source: str = "rules"  # "rules" or "llm"


def match_instrument(query: str) -> Optional[str]:
    """Return the keyword of the first instrument pattern found in the query."""
    for keyword, pattern in INSTRUMENT_PATTERNS:
        if pattern.search(query):
            return keyword
    return None


def decide_title_lookup(query: Optional[str]) -> TitleDecision:
    """Deterministic decision from the instrument pattern table."""
    if not query or not query.strip():
        return TitleDecision(False, "empty query")
    s = query.strip()
    if "," in s:
        return TitleDecision(False, "contains comma -> descriptive")
    keyword = match_instrument(s)
    if keyword:
        return TitleDecision(True, f"matched {keyword}")
    return TitleDecision(False, "no identifier match")


def is_title_lookup(query: Optional[str]) -> bool:
    return decide_title_lookup(query).is_title


class TitleLookupClassifier:
    """
    Title-lookup decision with an optional LLM recall boost.

    The pattern table is authoritative: a comma always means "descriptive",
    a pattern hit always means "title". Only a pattern miss is offered to
    the LLM, and only a clear YES changes the answer.
    """

    def __init__(self, config: Optional[SearchConfig] = None, llm=None):
        self.config = config or SearchConfig()
        self.llm = llm

    def decide(self, query: Optional[str]) -> TitleDecision:
        decision = decide_title_lookup(query)
        if decision.is_title or decision.reason != "no identifier match":
            return decision
        if self.llm is None or not self.config.use_llm_title_classifier:
            return decision

        try:
            reply = self.llm.complete(
                LLM_PROMPTS["title_classifier_system"],
                f"Query: {query.strip()}",
                model=self.config.classifier_model,
                temperature=0.0,
                max_tokens=5,
            )
        except Exception as e:
            logger.warning(f"Title classifier failed: {e}. Using pattern decision.")
            return decision

        if reply and reply.strip().lower().startswith("yes"):
            return TitleDecision(True, "llm classified as title", source="llm")
        return decision


# =============================================================================
# Variant expansion
# =============================================================================

def _normalize_punctuation(s: str) -> str:
    return re.sub(r"\s+", " ", s).replace(".", "").strip()


def expand_variants(query: Optional[str]) -> list[str]:
    """
    Canonical rewrites of an identifier-like query.

    "RA 1061" -> ["RA 1061", "Republic Act No. 1061", "Republic Act 1061",
    "Republic Act No 1061", "Republic Act No.1061"]. The trimmed original is
    always first; duplicates are removed.
    """
    if not query or not query.strip():
        return []
    s = query.strip()
    variants = [s]

    def add(v: str) -> None:
        if v and v not in variants:
            variants.append(v)

    id_match = TRAILING_ID_PATTERN.search(s)
    id_part = id_match.group(2).strip() if id_match else None

    for pattern, full in ABBREVIATION_EXPANSIONS:
        if not re.search(pattern, s, re.IGNORECASE):
            continue
        if id_part:
            add(f"{full} No. {id_part}")
            add(f"{full} {id_part}")
            add(f"{full} No {id_part}")
            add(f"{full} No.{id_part}")
        else:
            add(full)
        add(_normalize_punctuation(s))

    bare = BARE_ID_PATTERN.match(s)
    if bare:
        abbreviation = re.sub(r"\s+", "", bare.group(1))
        id_part = bare.group(2)
        for pattern, full in ABBREVIATION_EXPANSIONS:
            if re.match(rf"^(?:{pattern})$", abbreviation, re.IGNORECASE):
                add(f"{full} No. {id_part}")
                add(f"{full} {id_part}")
        add(f"{abbreviation} {id_part}")

    return variants


def extract_type_evidence(query: Optional[str]) -> Optional[tuple[str, str]]:
    """Split "G.R. No. 100264-81" into ("G.R.", "100264-81"); None if it does not fit."""
    if not query:
        return None
    m = TYPE_EVIDENCE_PATTERN.match(query.strip())
    if not m:
        return None
    doc_type = (m.group(1) or "").strip()
    evidence = (m.group(2) or "").strip()
    if not doc_type or not evidence:
        return None
    return doc_type, evidence


def choose_best_variant(variants: list[str]) -> Optional[str]:
    """
    Pick the single variant used as the substring title filter.

    Prefers full-name keywords, then "No." forms, then the longest variant.
    """
    if not variants:
        return None
    pool = [v for v in variants if FULL_NAME_KEYWORDS.search(v)]
    if not pool:
        pool = [v for v in variants if NUMBER_MARKER.search(v)]
    if not pool:
        pool = list(variants)
    return max(pool, key=len)


# =============================================================================
# Recency ordering
# =============================================================================

def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def date_distance(value, reference: date) -> float:
    """Absolute distance in days from ``reference``; infinity when undated."""
    parsed = _as_date(value)
    if parsed is None:
        return float("inf")
    return float(abs((parsed - reference).days))


def sort_by_reference_date(rows: list[dict], reference: Optional[date]) -> list[dict]:
    """Closest-to-reference first, then ascending distance when present."""
    if reference is None:
        return rows

    def key(row):
        distance = row.get("distance")
        return (
            date_distance(row.get("date"), reference),
            distance if distance is not None else 0.0,
        )

    return sorted(rows, key=key)


# =============================================================================
# Cascade
# =============================================================================

@dataclass
class TitleResolution:
    """Rows found by the cascade, the stage that found them, and the fallback filter."""
    rows: list[dict] = field(default_factory=list)
    stage: str = STAGE_SUBSTRING
    title_filter: Optional[str] = None
    variants: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.rows)


class TitleResolver:
    """Runs the lookup cascade against a document store."""

    def __init__(self, store, config: Optional[SearchConfig] = None):
        self.store = store
        self.config = config or SearchConfig()

    def _first_hit(self, lookup, variants: list[str], k: int) -> list[dict]:
        for variant in variants:
            rows = lookup(variant, k)
            if rows:
                return rows
        return []

    def resolve(self, query: str, k: int = 5) -> TitleResolution:
        """
        Run the cascade for one query.

        Store errors propagate; an empty stage just moves on.
        """
        raw = (query or "").strip()
        variants = expand_variants(raw)
        reference = self.config.reference_date

        rows = self._first_hit(self.store.find_by_exact_title, variants, k)
        if rows:
            logger.info(f"Title lookup '{raw[:50]}': {len(rows)} exact match(es)")
            return TitleResolution(sort_by_reference_date(rows, reference), STAGE_EXACT, None, variants)

        rows = self._first_hit(self.store.find_by_normalized_title, variants, k)
        if rows:
            logger.info(f"Title lookup '{raw[:50]}': {len(rows)} normalized-identifier match(es)")
            return TitleResolution(sort_by_reference_date(rows, reference), STAGE_NORMALIZED, None, variants)

        pair = extract_type_evidence(raw)
        if pair:
            rows = self.store.find_by_type_evidence(pair[0], pair[1], k)
            if rows:
                logger.info(f"Title lookup '{raw[:50]}': {len(rows)} type+evidence match(es) for {pair}")
                return TitleResolution(
                    sort_by_reference_date(rows, reference), STAGE_TYPE_EVIDENCE, None, variants
                )

        best = choose_best_variant(variants)
        logger.info(f"Title lookup '{raw[:50]}': no exact hit, title filter '{best}'")
        return TitleResolution([], STAGE_SUBSTRING, best, variants)
