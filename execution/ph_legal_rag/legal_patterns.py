"""
Philippine Legal Pattern Definitions

All regex tables, abbreviation maps and LLM prompt templates used by the
retrieval core. Modules import from here instead of defining patterns inline.
"""

import re

# =============================================================================
# Legal Instrument Identifier Patterns (title-lookup decision)
# =============================================================================

# (keyword, alternation of spellings). Each becomes a case-insensitive pattern
# anchored on a word boundary, optionally followed by "No."/"#" and an id.
_INSTRUMENT_SPELLINGS = [
    ("G.R.", r"G\.R\.|GR|G R\.|General Registry Number"),
    ("R.A.", r"R\.A\.|RA|Republic Act|Republic Act No\.?"),
    ("C.A.", r"C\.A\.|CA|Commonwealth Act|Commonwealth Act No\.?"),
    ("P.D.", r"P\.D\.|PD|Presidential Decree|Presidential Decree No\.?"),
    ("A.O.", r"A\.O\.|AO|Administrative Order|Administrative Order No\.?"),
    ("B.P.", r"B\.P\.|BP|Batas Pambansa|Batas Pambansa No\.?"),
    ("M.C.", r"M\.C\.|MC|Memorandum Circular|Memorandum Circular No\.?"),
    ("A.M.", r"A\.M\.|AM|Administrative Matter|Administrative Matter No\.?"),
    ("E.O.", r"E\.O\.|EO|Executive Order|Executive Order No\.?"),
    ("L.O.", r"L\.O\.|LO|Legislative Order|Legislative Order No\.?"),
    ("M.O.", r"M\.O\.|MO|Memorandum Order|Memorandum Order No\.?"),
    ("I.D.", r"I\.D\.|ID|Internal Directive|Internal Directive No\.?"),
    ("J.A.", r"J\.A\.|JA|Judicial Affidavit|Judicial Affidavit No\.?"),
    ("S.R.O.", r"S\.R\.O\.|SRO|Supreme Court Resolution Order|Supreme Court Resolution Order No\.?"),
    ("R.S.", r"R\.S\.|RS|Republic Statute|Republic Statute No\.?"),
    ("C.A.R.", r"C\.A\.R\.|CAR|Court Administrative Rules|Court Administrative Rules No\.?"),
]

INSTRUMENT_PATTERNS = [
    (
        keyword,
        re.compile(
            rf"\b(?:{spellings})(?=\s|$|[.,:;])(?:\s*(?:No\.?|#)?\s*([\dA-Za-z\-/]+))?",
            re.IGNORECASE,
        ),
    )
    for keyword, spellings in _INSTRUMENT_SPELLINGS
]

# =============================================================================
# Abbreviation Expansion (title variants)
# =============================================================================

ABBREVIATION_EXPANSIONS = [
    (r"\bR\.A\.|\bRA\b", "Republic Act"),
    (r"\bG\.R\.|\bGR\b", "G.R."),
    (r"\bC\.A\.|\bCA\b", "Commonwealth Act"),
    (r"\bP\.D\.|\bPD\b", "Presidential Decree"),
    (r"\bA\.O\.|\bAO\b", "Administrative Order"),
    (r"\bB\.P\.|\bBP\b", "Batas Pambansa"),
    (r"\bM\.C\.|\bMC\b", "Memorandum Circular"),
    (r"\bA\.M\.|\bAM\b", "Administrative Matter"),
    (r"\bE\.O\.|\bEO\b", "Executive Order"),
]

# Trailing identifier: "... 1061", "... No. 100264-81", "...: 01-2-04-SC"
TRAILING_ID_PATTERN = re.compile(r"([A-Za-z.\s]{1,10})\s*[:#-]?\s*([0-9][0-9A-Za-z/\-._]*)$")

# Bare abbreviation directly followed by an id: "RA 1061", "PD1866"
BARE_ID_PATTERN = re.compile(r"^([A-Za-z.]{1,5})\s*([0-9][0-9A-Za-z/\-._]*)$")

# (type, evidence) split: "G.R. No. 100264-81" -> ("G.R.", "100264-81")
TYPE_EVIDENCE_PATTERN = re.compile(
    r"^\s*([A-Za-z.\s]{1,30}?)\s*(?:No\.?|Number|#)?\s*([-0-9A-Za-z/]+)\s*$",
    re.IGNORECASE,
)

# Preferred variants when choosing the single title filter
FULL_NAME_KEYWORDS = re.compile(
    r"(Republic|Presidential|Executive|Administrative|Commonwealth|Batas|Memorandum)",
    re.IGNORECASE,
)
NUMBER_MARKER = re.compile(r"\bNo\.?(?!\w)", re.IGNORECASE)

# =============================================================================
# Citations inside document bodies (citation follow-up)
# =============================================================================

CITATION_PATTERNS = [
    re.compile(r"\b(?:R\.A\.|RA|Republic Act)\s*(?:No\.?)?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\b(?:P\.D\.|PD|Presidential Decree)\s*(?:No\.?)?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\b(?:E\.O\.|EO|Executive Order)\s*(?:No\.?)?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\b(?:B\.P\.|BP|Batas Pambansa)\s*(?:No\.?)?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\bG\.R\.\s*No\.?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\b(?:A\.O\.|AO|Administrative Order)\s*(?:No\.?)?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\b(?:D\.O\.|DO|Department Order)\s*(?:No\.?)?\s*(\d+)", re.IGNORECASE),
]

# =============================================================================
# Law Name Extraction (document header scanning)
# =============================================================================

HEADER_LINES = 20
LAW_NAME_MAX_CHARS = 250

GR_HEADER = re.compile(r"G\.R\.\s+No\.", re.IGNORECASE)
AM_HEADER = re.compile(r"A\.M\.\s+No\.", re.IGNORECASE)
RESOLUTION_HEADER = re.compile(r"RESOLUTION\s+No\.", re.IGNORECASE)
COURT_DOCUMENT_HEADER = re.compile(r"G\.R\.|SUPREME COURT|A\.M\.", re.IGNORECASE)
STATUTE_HEADER = re.compile(
    r"Republic Act No\.|Executive Order No\.|Presidential Decree No\.|Batas Pambansa Blg\.",
    re.IGNORECASE,
)
COMMISSION_HEADER = re.compile(
    r"(?:COMMISSION ON ELECTIONS|COMMISSION ON AUDIT|CIVIL SERVICE COMMISSION|"
    r"NATIONAL LABOR RELATIONS COMMISSION|BANGKO SENTRAL NG PILIPINAS)",
    re.IGNORECASE,
)

# Boilerplate header lines that never name the document
HEADER_SKIP_PATTERNS = [
    re.compile(r"^(FIRST|SECOND|THIRD|FOURTH|FIFTH|SIXTH|SEVENTH|EIGHTH|NINTH|TENTH)\s+DIVISION$", re.IGNORECASE),
    re.compile(r"^EN\s+BANC$", re.IGNORECASE),
    re.compile(
        r"^(January|February|March|April|May|June|July|August|September|October|November|December)"
        r"\s+\d{1,2},?\s+\d{4}$",
        re.IGNORECASE,
    ),
    re.compile(r"^(DECISION|RESOLUTION|ORDER|D\s+E\s+C\s+I\s+S\s+I\s+O\s+N)$", re.IGNORECASE),
    re.compile(r"^Republic of the Philippines$", re.IGNORECASE),
    re.compile(r"^SUPREME COURT$", re.IGNORECASE),
    re.compile(r"^Manila$", re.IGNORECASE),
]

UNKNOWN_DOCUMENT = "Unknown Document"

# =============================================================================
# Snippet Extraction
# =============================================================================

SENTENCE_PATTERN = re.compile(r"[^.!?]+[.!?]+")

# Model replies that mean "nothing relevant here"
SNIPPET_REFUSAL_PATTERN = re.compile(
    r"no relevant passage|no relevant text|no relevant snippet|nothing relevant|no passage exists|no match",
    re.IGNORECASE,
)
EDGE_QUOTES_PATTERN = re.compile(r"^[\"'`]+|[\"'`]+$")
PUNCTUATION_ONLY_PATTERN = re.compile(r"^[^\w]+$")

# =============================================================================
# LLM Prompt Templates
# =============================================================================

LLM_PROMPTS = {
    "title_classifier_system": (
        "You classify search queries for a Philippine legal research database. "
        "Answer YES if the query names a specific law, case or issuance by its identifier or title "
        "(for example 'RA 1061', 'G.R. No. 100264-81', 'Anti-Violence Against Women and Their "
        "Children Act'). Answer NO if it describes a situation or asks a question. "
        "Reply with exactly one word: YES or NO."
    ),
    "snippet_system": (
        "You are a legal assistant that extracts relevant passages from documents. "
        "Given a document and a question, find and return the most relevant passage (1-3 sentences) "
        "that helps answer the question. "
        "Extract the passage as it appears in the document, maintaining its exact wording. "
        "If no relevant passage exists, return empty. "
        "Return ONLY the passage text - no labels, quotes, or explanations."
    ),
    "snippet_user": (
        "Question: {query}\n\nDocument:\n{chunk}\n\n"
        "Extract the most relevant passage (max {max_chars} chars) that helps answer this question. "
        "Return only the passage text, or empty if nothing is relevant."
    ),
    "interpretation_system": (
        "You are a friendly, conversational legal research assistant. Use only the documents and "
        "snippets provided below; do NOT hallucinate facts or cite sources not included in the input. "
        "Identify the top 1-5 documents most useful to answer the user's query and explain why, "
        "referencing exact snippets provided. "
        "When referring to documents, always use the case or law name as provided in the 'Law' field, "
        "never only the numeric 'DOCUMENT N' identifier. "
        "Be concise: limit 'reason' to 30 words, 'brief' to 20 words, 'recommendedActions' to at most "
        "3 short items and 'uncertainties' to at most 2 short items. "
        "Output format: JSON with keys { topDocuments: [{index, lawName, reason, supportingSnippet, "
        "recommendedActions:[], uncertainties:[]}], ranked: [indexes in order], brief: 'short 1-2 "
        "sentence friendly summary' }. Return only the JSON object."
    ),
    "interpretation_user": (
        "Query: {query}\n\nDocuments:\n{documents}\n\n"
        "Please return only valid JSON following the output format above."
    ),
}
