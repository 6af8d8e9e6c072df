"""
Tests for key normalization and text helpers.
"""

import pytest

from overlay_translator.glossary.normalizer import normalize, safe_language, strip_markup, truncate


class TestStripMarkup:

    def test_removes_colour_tags(self):
        assert strip_markup("<col=ffff00>Goblin</col>") == "Goblin"

    def test_keeps_text_between_tags(self):
        assert strip_markup("Attack <col=ff0000>Goblin</col> (level-2)") == "Attack Goblin (level-2)"

    def test_nested_fragments_do_not_leave_tags(self):
        assert strip_markup("<<b>b>Bank") == "Bank"

    def test_nbsp_becomes_space(self):
        assert strip_markup("Talk\u00a0to") == "Talk to"

    def test_none_and_empty(self):
        assert strip_markup(None) == ""
        assert strip_markup("") == ""


class TestNormalize:

    def test_collapses_whitespace_and_folds_case(self):
        assert normalize("  <col=00ffff>Talk  to</col> ") == "talk to"

    def test_tabs_and_newlines(self):
        assert normalize("Bank\tof\nGielinor") == "bank of gielinor"

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "Talk-to",
        "  <col=ff9040>Rune\u00a0 SCIMITAR</col>  ",
        "Straße",
        "<<b>b>Mixed   CASE\ttext",
    ])
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once

    def test_none(self):
        assert normalize(None) == ""


class TestSafeLanguage:

    def test_blank_uses_default(self):
        assert safe_language("") == "RU"
        assert safe_language(None) == "RU"
        assert safe_language("  ", default="EN") == "EN"

    def test_trims_and_upper_cases(self):
        assert safe_language(" de ") == "DE"


def test_truncate_shortens_long_text():
    text = "a" * 100
    assert truncate(text, limit=10) == "a" * 10 + "…"
    assert truncate("line1\nline2") == "line1\\nline2"
    assert truncate(None) == "null"
