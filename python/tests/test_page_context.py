"""Tests for page-context truncation and definition merging."""

from chatrelay.services.page_context import (
    CONTEXT_FOOTER,
    CONTEXT_HEADER,
    TRUNCATION_MARKER,
    build_definition,
    truncate_context,
)


class TestTruncateContext:
    def test_short_text_only_collapsed(self):
        assert truncate_context("  Hello\n\n  world\t!  ") == "Hello world !"

    def test_cut_at_last_period(self):
        text = "First sentence. Second sentence that is long"
        assert truncate_context(text, max_chars=30) == "First sentence." + TRUNCATION_MARKER

    def test_cut_at_secondary_break_without_period(self):
        text = "Is this it? Maybe not; keep going on and on"
        assert truncate_context(text, max_chars=25) == "Is this it? Maybe not;" + TRUNCATION_MARKER

    def test_cut_at_space_without_punctuation(self):
        text = "alpha beta gamma delta"
        assert truncate_context(text, max_chars=13) == "alpha beta" + TRUNCATION_MARKER

    def test_hard_cut_without_any_break(self):
        text = "x" * 50
        assert truncate_context(text, max_chars=10) == "x" * 10 + TRUNCATION_MARKER

    def test_exact_limit_not_truncated(self):
        assert truncate_context("abcde", max_chars=5) == "abcde"


class TestBuildDefinition:
    def test_no_context_returns_definition(self):
        assert build_definition("Be brief.", None) == "Be brief."
        assert build_definition("Be brief.", "   ") == "Be brief."

    def test_context_appended_after_definition(self):
        merged = build_definition("Be brief.", "Page text.")

        assert merged == "Be brief.\n\n" + CONTEXT_HEADER + "Page text." + CONTEXT_FOOTER

    def test_context_without_definition(self):
        assert build_definition("", "Page text.") == CONTEXT_HEADER + "Page text." + CONTEXT_FOOTER

    def test_long_context_truncated(self):
        merged = build_definition(None, "word " * 100, max_chars=20)

        assert TRUNCATION_MARKER in merged
        assert merged.startswith(CONTEXT_HEADER)
