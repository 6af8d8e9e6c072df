"""
Key normalization for glossary and cache lookups.
"""

import re

_TAG = re.compile(r"<[^<>]*>")
_WHITESPACE = re.compile(r"\s+")

NBSP = "\u00a0"
DEFAULT_LANGUAGE = "RU"


def strip_markup(raw: str | None) -> str:
    """Remove decoration tags and turn non-breaking spaces into spaces.

    Tags such as ``<col=ff9040>`` and ``</col>`` are removed while the text
    they wrap is kept. Removal repeats until nothing changes, so fragments
    like ``<<b>b>`` cannot leave a new tag behind.

    Args:
        raw: Text as it appears on screen (may be None)

    Returns:
        Text without tags; whitespace is otherwise untouched

    Example:
        >>> strip_markup("<col=ffff00>Goblin</col>")
        'Goblin'
    """
    if not raw:
        return ""
    text = raw
    while True:
        stripped = _TAG.sub("", text)
        if stripped == text:
            break
        text = stripped
    return text.replace(NBSP, " ")


def normalize(raw: str | None) -> str:
    """Canonicalize a string into a lookup key.

    Strips markup, collapses whitespace runs, trims and case-folds.
    The function is pure and idempotent.

    Example:
        >>> normalize("  <col=00ffff>Talk  to</col> ")
        'talk to'
    """
    text = strip_markup(raw)
    text = _WHITESPACE.sub(" ", text).strip()
    return text.casefold()


def safe_language(code: str | None, default: str = DEFAULT_LANGUAGE) -> str:
    """Return a trimmed upper-case language code, or the default when blank."""
    if code is None or not code.strip():
        return default
    return code.strip().upper()


def truncate(text: str | None, limit: int = 80) -> str:
    """Shorten text for single-line log output."""
    if text is None:
        return "null"
    text = text.replace("\n", "\\n")
    return text if len(text) <= limit else text[:limit] + "…"
