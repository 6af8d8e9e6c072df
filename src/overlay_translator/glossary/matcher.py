"""
Layered glossary matching: exact, normalized, whole-word, numeric-suffix
and token-wise rewriting with quantifier fusion.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Iterable, Iterator

from .models import Category
from .normalizer import strip_markup, truncate
from .store import GlossaryStore
from .tokenizer import Token, TokenKind, has_internal_whitespace, tokenize

logger = logging.getLogger("overlay-translator")

DEFAULT_QUANTIFIERS: tuple[str, ...] = ("all", "all-but-one", "x")

# Categories whose misses are retried against the fallback category.
FALLBACK_CATEGORIES: frozenset[Category] = frozenset({Category.ACTION, Category.UI})

# Longest phrase (in words) the token-wise pass tries to substitute as one unit.
MAX_PHRASE_WORDS = 4

DASHES = "-\u2010\u2011\u2012\u2013\u2014\u2212"
CANONICAL_SEPARATOR = "-"

# <letters><separator><digits><trailing>; the separator may be a dash variant
# or one of : _ / ×, or absent.
_NUMERIC_SUFFIX = re.compile(
    r"^(?P<base>[^\W\d_]+)"
    r"(?P<sep>[" + re.escape(DASHES) + r"]|[:_/×])?"
    r"(?P<digits>\d+)"
    r"(?P<tail>\S*)$"
)


class MatchLayer(str, Enum):
    """Which resolution layer produced a match, in attempt order."""
    EXACT = "exact"
    STRIPPED = "stripped"
    NORMALIZED = "normalized"
    WHOLE_WORD = "whole_word"
    WHOLE_WORD_NOCASE = "whole_word_nocase"
    NUMERIC_SUFFIX = "numeric_suffix"
    TOKENWISE = "tokenwise"


@dataclass(frozen=True)
class MatchResult:
    """A glossary hit.

    Attributes:
        text: Translated text
        layer: Layer that produced it
        category: Category whose entry supplied the hit
    """
    text: str
    layer: MatchLayer
    category: Category


def match_case(source: str, target: str) -> str:
    """Adjust the capitalization of ``target`` to mirror ``source``.

    - ``source`` entirely upper-case: upper-case all of ``target``
    - ``source`` capitalized (first upper, rest lower): capitalize ``target``
    - otherwise ``target`` is returned untouched

    Example:
        >>> match_case("TAKE", "взять")
        'ВЗЯТЬ'
        >>> match_case("Take", "взять")
        'Взять'
        >>> match_case("take", "взять")
        'взять'
    """
    if not source or not target:
        return target
    if source.isupper():
        return target.upper()
    head, rest = source[0], source[1:]
    if head.isupper() and rest == rest.lower():
        return target[0].upper() + target[1:].lower()
    return target


@lru_cache(maxsize=8192)
def _word_pattern(key: str, ignore_case: bool) -> re.Pattern[str]:
    flags = re.IGNORECASE if ignore_case else 0
    return re.compile(r"(?<!\w)" + re.escape(key) + r"(?!\w)", flags)


class GlossaryMatcher:
    """Resolves on-screen text against a GlossaryStore.

    Layers are tried in order, each only when the previous one missed:

    1. exact match of the trimmed text, original case
    2. exact match with decoration tags stripped
    3. exact match on the normalized key
    4. single-token input: whole-word scan over authored keys (case-sensitive)
    5. single-token input: whole-word scan over normalized keys (case-insensitive)
    6. single-token input: numeric suffix, ``Withdraw10`` -> ``<Withdraw>10``
    7. multi-word input: token-wise rewrite with quantifier fusion

    Each layer consults the requested category first and, for the categories
    in ``fallback_for``, then the fallback category. Multi-word input never
    reaches layers 4-6, which keeps free sentences from picking up partial
    matches.

    Example:
        >>> matcher = GlossaryMatcher(store)
        >>> matcher.match("Withdraw-10", Category.ACTION)
        'Снять-10'
        >>> matcher.match("Drop All", Category.ACTION)
        'Бросить-All'
    """

    def __init__(
        self,
        store: GlossaryStore,
        quantifiers: Iterable[str] = DEFAULT_QUANTIFIERS,
        fallback: Category | None = Category.DEFAULT,
        fallback_for: Iterable[Category] = FALLBACK_CATEGORIES,
    ) -> None:
        self.store = store
        self.fallback = fallback
        self.fallback_for = frozenset(fallback_for)
        self.quantifiers = tuple(q.strip().lower() for q in quantifiers if q and q.strip())
        self._quantifier_re = self._compile_quantifiers(self.quantifiers)

    @staticmethod
    def _compile_quantifiers(quantifiers: tuple[str, ...]) -> re.Pattern[str] | None:
        if not quantifiers:
            return None
        alternatives = "|".join(
            re.escape(q) for q in sorted(set(quantifiers), key=len, reverse=True)
        )
        return re.compile(r"(?:" + alternatives + r")(?![^\W_])", re.IGNORECASE)

    def _categories(self, category: Category) -> tuple[Category, ...]:
        if self.fallback is None or self.fallback == category or category not in self.fallback_for:
            return (category,)
        return (category, self.fallback)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def match(self, raw: str | None, category: Category = Category.DEFAULT) -> str | None:
        """Translate ``raw`` using every layer; None when nothing matched."""
        result = self.explain(raw, category)
        return result.text if result else None

    def match_exact_only(self, raw: str | None, category: Category = Category.DEFAULT) -> str | None:
        """Translate ``raw`` with the exact layers (1-3) only.

        Used for long free-form sentences where partial matches would do
        more harm than good.
        """
        if raw is None:
            return None
        trimmed = raw.strip()
        if not trimmed:
            return None
        result = self._exact_layers(trimmed, self._categories(category))
        return result.text if result else None

    def explain(self, raw: str | None, category: Category = Category.DEFAULT) -> MatchResult | None:
        """Like :meth:`match` but also reports which layer produced the hit."""
        if raw is None:
            return None
        trimmed = raw.strip()
        if not trimmed:
            return None

        categories = self._categories(category)

        result = self._exact_layers(trimmed, categories)
        if result:
            return result

        stripped = strip_markup(trimmed).strip()
        if not stripped:
            return None

        single_token = not has_internal_whitespace(stripped)
        if single_token:
            result = (
                self._whole_word(stripped, categories, ignore_case=False)
                or self._whole_word(stripped, categories, ignore_case=True)
            )
            if result:
                return result

            result = self._numeric_suffix(stripped, categories)
            if result:
                return result
        else:
            result = self._tokenwise(stripped, categories)
            if result:
                return result

        logger.debug(f"Glossary miss: '{truncate(raw)}' ({category.value})")
        return None

    # ------------------------------------------------------------------
    # Layers 1-3
    # ------------------------------------------------------------------

    def _exact_layers(self, trimmed: str, categories: tuple[Category, ...]) -> MatchResult | None:
        for category in categories:
            value = self.store.lookup_exact(trimmed, category)
            if value is not None:
                logger.debug(f"Glossary exact hit: '{truncate(trimmed)}' -> '{truncate(value)}'")
                return MatchResult(value, MatchLayer.EXACT, category)

        stripped = strip_markup(trimmed).strip()
        if stripped != trimmed:
            for category in categories:
                value = self.store.lookup_exact(stripped, category)
                if value is not None:
                    logger.debug(f"Glossary stripped hit: '{truncate(stripped)}' -> '{truncate(value)}'")
                    return MatchResult(value, MatchLayer.STRIPPED, category)

        for category in categories:
            value = self.store.lookup_normalized(trimmed, category)
            if value is not None:
                logger.debug(f"Glossary normalized hit: '{truncate(trimmed)}' -> '{truncate(value)}'")
                return MatchResult(value, MatchLayer.NORMALIZED, category)

        return None

    def _lookup_word(self, text: str, categories: tuple[Category, ...]) -> tuple[str, Category] | None:
        """Exact then normalized lookup for a token or phrase inside a larger text."""
        for category in categories:
            value = self.store.lookup_exact(text, category)
            if value is not None:
                return value, category
        for category in categories:
            value = self.store.lookup_normalized(text, category)
            if value is not None:
                return value, category
        return None

    # ------------------------------------------------------------------
    # Layers 4-5
    # ------------------------------------------------------------------

    def _whole_word(
        self,
        text: str,
        categories: tuple[Category, ...],
        ignore_case: bool,
    ) -> MatchResult | None:
        haystack = text.casefold() if ignore_case else text
        layer = MatchLayer.WHOLE_WORD_NOCASE if ignore_case else MatchLayer.WHOLE_WORD

        for category in categories:
            entries: Iterator[tuple[str, str]] = (
                self.store.normalized_entries(category) if ignore_case
                else self.store.entries(category)
            )
            best: tuple[str, str, re.Match[str]] | None = None
            for key, value in entries:
                if best is not None and len(key) <= len(best[0]):
                    continue
                if key not in haystack:
                    continue
                found = _word_pattern(key, ignore_case).search(text)
                if found:
                    best = (key, value, found)

            if best is not None:
                key, value, found = best
                start, end = found.span()
                replaced = text[:start] + match_case(text[start:end], value) + text[end:]
                logger.debug(
                    f"Glossary whole-word hit: '{truncate(text)}' contains '{key}' -> '{truncate(replaced)}'"
                )
                return MatchResult(replaced, layer, category)

        return None

    # ------------------------------------------------------------------
    # Layer 6
    # ------------------------------------------------------------------

    def _numeric_suffix(self, text: str, categories: tuple[Category, ...]) -> MatchResult | None:
        found = _NUMERIC_SUFFIX.match(text)
        if not found:
            return None

        base = found.group("base")
        hit = self._exact_layers(base, categories)
        if hit is None:
            return None

        separator = found.group("sep") or ""
        if separator and separator in DASHES:
            separator = CANONICAL_SEPARATOR

        translated = f"{hit.text}{separator}{found.group('digits')}{found.group('tail')}"
        logger.debug(f"Glossary numeric-suffix hit: '{truncate(text)}' -> '{truncate(translated)}'")
        return MatchResult(translated, MatchLayer.NUMERIC_SUFFIX, hit.category)

    # ------------------------------------------------------------------
    # Layer 7
    # ------------------------------------------------------------------

    def _phrase_ends(self, tokens: list[Token], start: int) -> list[int]:
        """Indexes of the last word token of phrases starting at ``start``, longest first."""
        ends = [start]
        i = start
        while len(ends) < MAX_PHRASE_WORDS:
            if (
                i + 2 < len(tokens)
                and tokens[i + 1].kind is TokenKind.SPACE
                and tokens[i + 2].kind is TokenKind.WORD
            ):
                i += 2
                ends.append(i)
            else:
                break
        return list(reversed(ends))

    def _quantifier_after(self, text: str, tokens: list[Token], index: int) -> tuple[str, int] | None:
        """Find a quantifier right after ``tokens[index - 1]``.

        One whitespace run or a single dash may separate it from the
        substituted word.

        Returns:
            ``(quantifier text, index of its last token)`` or None
        """
        k = index
        if k < len(tokens) and (
            tokens[k].kind is TokenKind.SPACE
            or (tokens[k].kind is TokenKind.PUNCT and len(tokens[k].text) == 1 and tokens[k].text in DASHES)
        ):
            k += 1
        if k >= len(tokens):
            return None

        token = tokens[k]
        if token.kind is TokenKind.NUMBER:
            return token.text, k
        if token.kind is not TokenKind.WORD or self._quantifier_re is None:
            return None

        found = self._quantifier_re.match(text, token.start)
        if not found:
            return None
        for last in range(k, len(tokens)):
            if tokens[last].end == found.end():
                return found.group(), last
        return None

    def _tokenwise(self, text: str, categories: tuple[Category, ...]) -> MatchResult | None:
        tokens = tokenize(text)
        out: list[str] = []
        changed = False
        first_category: Category | None = None
        i = 0

        while i < len(tokens):
            token = tokens[i]
            if token.kind is not TokenKind.WORD:
                out.append(token.text)
                i += 1
                continue

            substituted = False
            for end in self._phrase_ends(tokens, i):
                phrase = text[token.start:tokens[end].end]
                hit = self._lookup_word(phrase, categories)
                if hit is None:
                    continue

                value, category = hit
                first_category = first_category or category
                replacement = match_case(phrase, value)
                changed = substituted = True

                quantifier = self._quantifier_after(text, tokens, end + 1)
                if quantifier is not None:
                    q_text, q_last = quantifier
                    out.append(f"{replacement}{CANONICAL_SEPARATOR}{q_text}")
                    i = q_last + 1
                else:
                    out.append(replacement)
                    i = end + 1
                break

            if not substituted:
                out.append(token.text)
                i += 1

        if not changed:
            return None

        translated = "".join(out)
        logger.debug(f"Glossary token-wise hit: '{truncate(text)}' -> '{truncate(translated)}'")
        return MatchResult(translated, MatchLayer.TOKENWISE, first_category or categories[0])
