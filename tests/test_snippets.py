"""
Tests for execution/ph_legal_rag/snippets.py

Covers: sentence splitting, keyword selection, the heuristic snippet,
        chunking, LLM reply cleaning and validation, format_snippet, and
        SnippetExtractor (LLM path with heuristic fallback).
"""

import pytest

from tests.conftest import RA_9262_TEXT, ScriptedLLM

TEXT = (
    "The court ruled on the matter. "
    "Violence against women is punishable under this Act. "
    "Other provisions follow."
)


def _extractor(llm=None, **overrides):
    from execution.ph_legal_rag.config import SearchConfig
    from execution.ph_legal_rag.snippets import SnippetExtractor
    return SnippetExtractor(SearchConfig(**overrides), llm)


# ---------------------------------------------------------------------------
# Heuristic path
# ---------------------------------------------------------------------------

class TestHeuristicSnippet:

    def test_best_sentence(self):
        from execution.ph_legal_rag.snippets import heuristic_snippet
        assert heuristic_snippet(TEXT, "violence against women") == (
            "Violence against women is punishable under this Act."
        )

    def test_keywords_must_be_longer_than_three(self):
        from execution.ph_legal_rag.snippets import query_keywords
        assert query_keywords("the law of RA 9262") == ["9262"]

    def test_first_sentence_wins_ties(self):
        from execution.ph_legal_rag.snippets import heuristic_snippet
        text = "Custody goes to the mother. Custody may be reviewed."
        assert heuristic_snippet(text, "custody") == "Custody goes to the mother."

    def test_no_keyword_match_is_sentinel(self):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE, heuristic_snippet
        assert heuristic_snippet(TEXT, "maritime carriage") == UNKNOWN_PHRASE

    def test_no_sentences_is_sentinel(self):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE, heuristic_snippet
        assert heuristic_snippet("no terminal punctuation here", "terminal") == UNKNOWN_PHRASE

    @pytest.mark.parametrize("text", [None, ""])
    def test_missing_text_is_sentinel(self, text):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE, heuristic_snippet
        assert heuristic_snippet(text, "violence") == UNKNOWN_PHRASE

    def test_truncates_long_sentence(self):
        from execution.ph_legal_rag.snippets import heuristic_snippet
        sentence = "Violence " + "x" * 500 + "."
        snippet = heuristic_snippet(sentence, "violence", max_chars=300)
        assert len(snippet) == 303
        assert snippet.endswith("...")
        assert snippet.startswith("Violence")


class TestChunkText:

    def test_overlapping_chunks(self):
        from execution.ph_legal_rag.snippets import chunk_text
        assert chunk_text("abcdefghij", 4, 1, 20) == ["abcd", "defg", "ghij", "j"]

    def test_chunk_cap(self):
        from execution.ph_legal_rag.snippets import chunk_text
        assert len(chunk_text("a" * 100, 10, 0, 3)) == 3


class TestFormatting:

    def test_clean_llm_snippet_unwraps_fence_and_quotes(self):
        from execution.ph_legal_rag.snippets import clean_llm_snippet
        raw = '```\n"Violence against women is punishable under this Act."\n```'
        assert clean_llm_snippet(raw) == "Violence against women is punishable under this Act."

    def test_clean_llm_snippet_collapses_whitespace(self):
        from execution.ph_legal_rag.snippets import clean_llm_snippet
        assert clean_llm_snippet("Section  1.\n\nShort Title.") == "Section 1. Short Title."

    def test_format_snippet_whitespace(self):
        from execution.ph_legal_rag.snippets import format_snippet
        assert format_snippet("Line one.\n\n   Line two.") == "Line one. Line two."

    def test_format_snippet_drops_ellipsis_after_terminal(self):
        from execution.ph_legal_rag.snippets import format_snippet
        assert format_snippet("The Act is in force. ...") == "The Act is in force."

    def test_format_snippet_keeps_sentinel(self):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE, format_snippet
        assert format_snippet(UNKNOWN_PHRASE) == UNKNOWN_PHRASE


# ---------------------------------------------------------------------------
# SnippetExtractor
# ---------------------------------------------------------------------------

class TestSnippetExtractor:

    def test_heuristic_by_default(self):
        llm = ScriptedLLM("anything")
        snippet = _extractor(llm).extract(TEXT, "violence against women")
        assert snippet == "Violence against women is punishable under this Act."
        assert llm.calls == []

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_blank_text_is_sentinel(self, text):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE
        assert _extractor().extract(text, "violence") == UNKNOWN_PHRASE

    def test_llm_verbatim_passage_used(self):
        passage = "This Act shall be known as the Anti-Violence Against Women and Their Children Act of 2004."
        llm = ScriptedLLM(passage)
        snippet = _extractor(llm, use_llm_snippet=True).extract(RA_9262_TEXT, "short title")
        assert snippet == passage
        assert "short title" in llm.calls[0]["user"]

    def test_llm_refusal_falls_back_to_heuristic(self):
        llm = ScriptedLLM("No relevant passage.")
        snippet = _extractor(llm, use_llm_snippet=True).extract(TEXT, "violence against women")
        assert snippet == "Violence against women is punishable under this Act."

    def test_llm_punctuation_reply_rejected(self):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE
        extractor = _extractor(ScriptedLLM("..."), use_llm_snippet=True)
        assert extractor.extract_with_llm(TEXT, "violence") == UNKNOWN_PHRASE

    def test_llm_invented_passage_rejected(self):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE
        extractor = _extractor(ScriptedLLM("The penalty is life imprisonment."), use_llm_snippet=True)
        assert extractor.extract_with_llm(TEXT, "penalty") == UNKNOWN_PHRASE

    def test_failing_chunk_skipped(self):
        text = "Preamble text only. " * 5 + "Violence against women is punishable under this Act."
        llm = ScriptedLLM(RuntimeError("rate limited"), "Violence against women is punishable under this Act.")
        extractor = _extractor(
            llm, use_llm_snippet=True,
            snippet_chunk_size=60, snippet_chunk_overlap=10, snippet_max_chunks=20,
        )
        assert extractor.extract_with_llm(text, "violence") == (
            "Violence against women is punishable under this Act."
        )
        assert len(llm.calls) == 2

    def test_empty_replies_exhaust_chunks(self):
        from execution.ph_legal_rag.snippets import UNKNOWN_PHRASE
        llm = ScriptedLLM("")
        extractor = _extractor(
            llm, use_llm_snippet=True,
            snippet_chunk_size=40, snippet_chunk_overlap=0, snippet_max_chunks=3,
        )
        assert extractor.extract_with_llm("Sentence one here. " * 20, "sentence") == UNKNOWN_PHRASE
        assert len(llm.calls) == 3

    def test_use_llm_override(self):
        llm = ScriptedLLM("Other provisions follow.")
        snippet = _extractor(llm).extract(TEXT, "provisions", use_llm=True)
        assert snippet == "Other provisions follow."
        assert len(llm.calls) == 1
