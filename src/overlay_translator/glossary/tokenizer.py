"""
Tokenizer producing typed spans for token-wise glossary rewriting.
"""

import re
from dataclasses import dataclass
from enum import Enum


class TokenKind(str, Enum):
    WORD = "word"
    NUMBER = "number"
    SPACE = "space"
    PUNCT = "punct"


@dataclass(frozen=True)
class Token:
    """A typed run of characters.

    Attributes:
        kind: Run type
        text: Characters covered by the run
        start: Offset of the first character in the source text
        end: Offset just past the last character
    """
    kind: TokenKind
    text: str
    start: int
    end: int


# Order matters: a character is claimed by the first group that accepts it.
_TOKEN = re.compile(
    r"(?P<word>[^\W\d_]+)"
    r"|(?P<number>\d+)"
    r"|(?P<space>\s+)"
    r"|(?P<punct>(?:[^\w\s]|_)+)"
)

_KINDS = {
    "word": TokenKind.WORD,
    "number": TokenKind.NUMBER,
    "space": TokenKind.SPACE,
    "punct": TokenKind.PUNCT,
}


def tokenize(text: str) -> list[Token]:
    """Split text into word, number, space and punctuation runs.

    Joining the ``text`` of every token reproduces the input exactly.

    Example:
        >>> [t.text for t in tokenize("Withdraw-10 coins")]
        ['Withdraw', '-', '10', ' ', 'coins']
    """
    if not text:
        return []
    return [
        Token(_KINDS[m.lastgroup], m.group(), m.start(), m.end())
        for m in _TOKEN.finditer(text)
    ]


def has_internal_whitespace(text: str) -> bool:
    """True when the trimmed text contains whitespace (i.e. is not a single token)."""
    return any(ch.isspace() for ch in text.strip())


def word_count(text: str) -> int:
    return sum(1 for t in tokenize(text) if t.kind is TokenKind.WORD)
