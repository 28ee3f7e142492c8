"""
Text normalization for duplicate detection.

Produces the canonical lowercase, punctuation-free form of a project's
title/abstract/author fields that both scorers work from.
"""

import re
from typing import Optional, Sequence, Set, Union

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize text for comparison.

    Lowercases, removes every character that is not a word character or
    whitespace, collapses whitespace runs and trims.

    Args:
        text: Raw text (None is treated as empty)

    Returns:
        Normalized text
    """
    if not text:
        return ""
    stripped = _NON_WORD.sub("", text.lower())
    return _WHITESPACE.sub(" ", stripped).strip()


def tokenize(text: Optional[str]) -> Set[str]:
    """Split normalized text into its set of unique tokens."""
    normalized = normalize_text(text)
    if not normalized:
        return set()
    return set(normalized.split(" "))


def join_authors(authors: Union[str, Sequence[str], None]) -> str:
    """Join an author list with single spaces. Strings pass through."""
    if not authors:
        return ""
    if isinstance(authors, str):
        return authors
    return " ".join(a for a in authors if a)


def combine_fields(*fields: Optional[str]) -> str:
    """Join non-empty fields with single spaces."""
    return " ".join(f for f in fields if f).strip()
