"""Offset-preserving tokenizer for clinical free text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AbstractSet, List

_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9]+")

STOP_WORDS: frozenset[str] = frozenset(
    {
        "and",
        "the",
        "but",
        "for",
        "with",
        "was",
        "were",
        "that",
        "this",
        "have",
        "from",
        "are",
        "has",
        "had",
        "not",
    }
)


@dataclass(frozen=True)
class Token:
    """Alphanumeric run with half-open character offsets into the source text."""

    text: str
    start: int
    end: int


def tokenize(
    text: str,
    *,
    min_length: int = 3,
    stop_words: AbstractSet[str] = STOP_WORDS,
) -> List[Token]:
    """Split ``text`` into candidate tokens, dropping short tokens and stop words."""
    if not text:
        return []

    tokens: List[Token] = []
    for match in _TOKEN_PATTERN.finditer(text):
        word = match.group(0)
        if len(word) < min_length or word.lower() in stop_words:
            continue
        tokens.append(Token(text=word, start=match.start(), end=match.end()))
    return tokens


__all__ = ["STOP_WORDS", "Token", "tokenize"]
