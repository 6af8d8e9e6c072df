"""
Glossary layer for overlay-translator.

Curated per-category glossaries and the layered matcher that resolves
on-screen text against them before any remote call is considered.

Components:
- GlossaryStore: per-category original-case and normalized indexes
- GlossaryMatcher: exact / whole-word / numeric-suffix / token-wise layers
- read_tsv, load_language: glossary file loading
- normalize, strip_markup, tokenize: pure text helpers

Usage:
    from overlay_translator.glossary import GlossaryStore, GlossaryMatcher, load_language

    store = GlossaryStore()
    load_language(store, "glossaries", "RU")
    matcher = GlossaryMatcher(store)
    matcher.match("Withdraw-10", Category.ACTION)   # "Снять-10"
"""

from .matcher import GlossaryMatcher, MatchLayer, MatchResult, match_case
from .models import Category, GlossaryRecord
from .normalizer import normalize, safe_language, strip_markup
from .store import GlossaryFormatError, GlossaryManifest, GlossaryStore, load_language, read_tsv
from .tokenizer import Token, TokenKind, tokenize

__all__ = [
    # Matcher
    "GlossaryMatcher",
    "MatchLayer",
    "MatchResult",
    "match_case",
    # Store
    "GlossaryStore",
    "GlossaryManifest",
    "GlossaryFormatError",
    "load_language",
    "read_tsv",
    # Models
    "Category",
    "GlossaryRecord",
    # Text helpers
    "normalize",
    "safe_language",
    "strip_markup",
    "Token",
    "TokenKind",
    "tokenize",
]
