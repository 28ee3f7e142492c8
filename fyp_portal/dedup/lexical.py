"""
Lexical similarity and quick duplicate check.

Word set-based Jaccard similarity. Cheap, synchronous and free of external
calls, so it is used for debounced on-keystroke checks and as the pre-filter
in front of the embedding path.
"""

import logging
from typing import List, Optional, Sequence

from .models import CorpusMatch, Document
from .normalizer import combine_fields, normalize_text
from .policy import DedupPolicy

logger = logging.getLogger("fyp_portal")

QUICK_CHECK_THRESHOLD = DedupPolicy().quick_threshold


def lexical_similarity(text1: Optional[str], text2: Optional[str]) -> float:
    """
    Compute Jaccard similarity between two texts.

    Identical normalized texts score 1.0 without tokenizing. If both texts
    normalize to nothing the result is 0.0 (no signal).

    Args:
        text1: First text
        text2: Second text

    Returns:
        float: Similarity score between 0.0 and 1.0
    """
    normalized1 = normalize_text(text1)
    normalized2 = normalize_text(text2)

    if not normalized1 and not normalized2:
        return 0.0

    if normalized1 == normalized2:
        return 1.0

    words1 = set(normalized1.split()) if normalized1 else set()
    words2 = set(normalized2.split()) if normalized2 else set()

    union = len(words1 | words2)
    if union == 0:
        return 0.0

    return len(words1 & words2) / union


def quick_duplicate_check(
    title: str,
    abstract: Optional[str],
    corpus: Sequence[Document],
    threshold: float = QUICK_CHECK_THRESHOLD,
) -> List[CorpusMatch]:
    """
    Text-based duplicate check of a draft against existing projects.

    Each record is scored on title alone and on title + abstract; the higher
    of the two is kept.

    Args:
        title: Draft title
        abstract: Draft abstract (may be empty)
        corpus: Existing projects
        threshold: Minimum score to report

    Returns:
        Matches sorted by similarity, highest first
    """
    combined = combine_fields(title, abstract)
    matches: List[CorpusMatch] = []

    for record in corpus:
        title_similarity = lexical_similarity(title, record.title)
        text_similarity = lexical_similarity(
            combined, record.document_text(include_authors=False)
        )
        score = max(title_similarity, text_similarity)

        if score >= threshold:
            matches.append(CorpusMatch(record=record, similarity=score, method="lexical"))

    matches.sort(key=lambda m: m.similarity, reverse=True)

    logger.debug(
        f"[QuickCheck] {len(matches)}/{len(corpus)} records >= {threshold:.2f}"
    )
    return matches
