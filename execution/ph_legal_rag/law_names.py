"""
Display names for documents, read from their headers.

Court decisions carry a "G.R. No." or "A.M. No." line, issuances a
"RESOLUTION No." or statute line, commission documents the commission name.
Anything else gets its first meaningful header lines.
"""

import re
import logging
from typing import Callable, Optional

from .legal_patterns import (
    AM_HEADER,
    COMMISSION_HEADER,
    COURT_DOCUMENT_HEADER,
    GR_HEADER,
    HEADER_LINES,
    HEADER_SKIP_PATTERNS,
    LAW_NAME_MAX_CHARS,
    RESOLUTION_HEADER,
    STATUTE_HEADER,
    UNKNOWN_DOCUMENT,
)

logger = logging.getLogger(__name__)


def _header_lines(text: str) -> list[str]:
    return text.split("\n")[:HEADER_LINES]


def _first_line_matching(pattern: re.Pattern) -> Callable[[str], Optional[str]]:
    def extract(text: str) -> Optional[str]:
        for line in _header_lines(text):
            if pattern.search(line):
                return line.strip()[:LAW_NAME_MAX_CHARS]
        return None
    return extract


extract_gr_name = _first_line_matching(GR_HEADER)
extract_am_name = _first_line_matching(AM_HEADER)
extract_resolution_name = _first_line_matching(RESOLUTION_HEADER)
extract_commission_name = _first_line_matching(COMMISSION_HEADER)


def extract_statute_name(text: str) -> Optional[str]:
    """Statute line, unless the header belongs to a court document."""
    lines = _header_lines(text)
    if COURT_DOCUMENT_HEADER.search("\n".join(lines)):
        return None
    for line in lines:
        if STATUTE_HEADER.search(line):
            return line.strip()[:LAW_NAME_MAX_CHARS]
    return None


def extract_fallback_name(text: str) -> str:
    """First five header lines that are not division/date/court boilerplate."""
    meaningful = []
    for line in _header_lines(text):
        trimmed = line.strip()
        if not trimmed:
            continue
        if any(p.search(trimmed) for p in HEADER_SKIP_PATTERNS):
            continue
        meaningful.append(trimmed)
        if len(meaningful) == 5:
            break
    extracted = "\n".join(meaningful)
    return extracted[:LAW_NAME_MAX_CHARS] if extracted else UNKNOWN_DOCUMENT


_EXTRACTORS = (
    extract_gr_name,
    extract_am_name,
    extract_resolution_name,
    extract_statute_name,
    extract_commission_name,
)


def extract_law_name(text: Optional[str]) -> str:
    """Best display name for a document body; "Unknown Document" when blank."""
    if not text or not text.strip():
        return UNKNOWN_DOCUMENT
    for extractor in _EXTRACTORS:
        name = extractor(text)
        if name:
            return name
    return extract_fallback_name(text)


def format_law_name(name: Optional[str], max_chars: int = 200) -> str:
    """Collapse whitespace (including newlines) and cap the length."""
    if not name:
        return UNKNOWN_DOCUMENT
    return re.sub(r"\s+", " ", name).strip()[:max_chars]
