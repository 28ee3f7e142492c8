"""
Duplicate scan orchestration.

Two operating modes plus the two-tier check built on them:

1. Batch mode: pairwise comparison of a supplied list of documents
2. Corpus mode: one candidate against projects fetched from the store
3. Two-tier check: lexical quick check, escalating to corpus mode only
   when a plausible near-duplicate surfaces
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from .embedder import EmbeddingService
from .errors import CorpusFetchFailed, DedupError
from .lexical import quick_duplicate_check
from .models import CorpusMatch, DedupSignal, Document, SimilarityMatch
from .normalizer import normalize_text
from .policy import DedupPolicy
from .vectors import cosine_similarity

if TYPE_CHECKING:
    from fyp_portal.registry.project_registry import ProjectStore

logger = logging.getLogger("fyp_portal")

ProgressCallback = Callable[[int, int], None]

_DEFAULTS = DedupPolicy()
BATCH_THRESHOLD = _DEFAULTS.batch_threshold
CORPUS_THRESHOLD = _DEFAULTS.corpus_threshold


def _clamp(score: float) -> float:
    return min(1.0, max(0.0, score))


def _report(on_progress: Optional[ProgressCallback], completed: int, total: int) -> None:
    if on_progress is not None:
        on_progress(completed, total)


def find_duplicates(
    documents: Sequence[Document],
    embedder: EmbeddingService,
    threshold: float = BATCH_THRESHOLD,
    on_progress: Optional[ProgressCallback] = None,
) -> List[SimilarityMatch]:
    """
    Find duplicate pairs within a list of documents.

    Each document is embedded exactly once. Progress runs over 2N steps: the
    first N for embeddings, the second N spread across the pair comparisons,
    ending at (2N, 2N).

    Args:
        documents: Documents to compare among themselves
        embedder: Embedding service
        threshold: Minimum cosine similarity for a pair to be reported
        on_progress: Optional callback invoked with (completed, total)

    Returns:
        Matching pairs sorted by similarity, highest first (ties keep pair order)

    Raises:
        ModelUnavailable: If the embedding model cannot be used
    """
    docs = list(documents)
    n = len(docs)

    if n < 2:
        logger.debug(f"[BatchScan] {n} document(s) - nothing to compare")
        return []

    total = 2 * n
    logger.info(f"[BatchScan] Scanning {n} documents (threshold={threshold:.2f})")

    embeddings = []
    for i, doc in enumerate(docs):
        embeddings.append(embedder.embed(doc.normalized_text))
        _report(on_progress, i + 1, total)

    pair_count = n * (n - 1) // 2
    compared = 0
    matches: List[SimilarityMatch] = []

    for i in range(n):
        for j in range(i + 1, n):
            similarity = cosine_similarity(embeddings[i], embeddings[j])
            compared += 1

            if similarity >= threshold:
                matches.append(
                    SimilarityMatch(
                        first=docs[i],
                        second=docs[j],
                        similarity=_clamp(similarity),
                        threshold=threshold,
                    )
                )

            _report(on_progress, n + (compared * n) // pair_count, total)

    matches.sort(key=lambda m: m.similarity, reverse=True)

    logger.info(f"[BatchScan] {len(matches)} duplicate pair(s) in {pair_count} comparisons")
    return matches


def check_against_corpus(
    candidate: Document,
    corpus: Sequence[Document],
    embedder: EmbeddingService,
    threshold: float = CORPUS_THRESHOLD,
    exclude_id: Optional[str] = None,
) -> List[CorpusMatch]:
    """
    Check a candidate project against existing projects by embedding similarity.

    Title and abstract are compared; authors are not. Embeddings are not
    cached across calls.

    Args:
        candidate: New or edited project
        corpus: Existing projects
        embedder: Embedding service
        threshold: Minimum cosine similarity to report
        exclude_id: Record to skip (the candidate's own stored copy)

    Returns:
        Matches sorted by similarity, highest first

    Raises:
        ModelUnavailable: If the embedding model cannot be used
    """
    records = [r for r in corpus if not (exclude_id and r.id == exclude_id)]

    if not records:
        logger.debug("[CorpusCheck] Corpus empty - no comparison possible")
        return []

    candidate_vector = embedder.embed(
        normalize_text(candidate.document_text(include_authors=False))
    )

    matches: List[CorpusMatch] = []
    for record in records:
        record_vector = embedder.embed(
            normalize_text(record.document_text(include_authors=False))
        )
        similarity = cosine_similarity(candidate_vector, record_vector)

        if similarity >= threshold:
            matches.append(
                CorpusMatch(record=record, similarity=_clamp(similarity), method="semantic")
            )

    matches.sort(key=lambda m: m.similarity, reverse=True)

    best = f"{matches[0].similarity:.4f}" if matches else "-"
    logger.info(
        f"[CorpusCheck] \"{candidate.title}\": {len(matches)}/{len(records)} "
        f"records >= {threshold:.2f} (best={best})"
    )
    return matches


def fetch_corpus(
    store: "ProjectStore",
    exclude_id: Optional[str] = None,
    degrade: bool = False,
) -> List[Document]:
    """
    Fetch the comparison corpus from the project store.

    Args:
        store: Project store
        exclude_id: Project to leave out
        degrade: Log failures and return an empty corpus instead of raising

    Raises:
        CorpusFetchFailed: If the query fails and degrade is False
    """
    try:
        return list(store.fetch_projects(exclude_id=exclude_id))
    except Exception as e:
        if degrade:
            logger.warning(f"[CorpusCheck] Corpus fetch failed: {e} - continuing with empty corpus")
            return []
        if isinstance(e, CorpusFetchFailed):
            raise
        raise CorpusFetchFailed(str(e)) from e


def check_project_for_duplicates(
    candidate: Document,
    store: "ProjectStore",
    embedder: EmbeddingService,
    threshold: float = CORPUS_THRESHOLD,
    exclude_id: Optional[str] = None,
    degrade: bool = False,
) -> List[CorpusMatch]:
    """Fetch the corpus from the store and run check_against_corpus."""
    corpus = fetch_corpus(store, exclude_id=exclude_id, degrade=degrade)
    return check_against_corpus(candidate, corpus, embedder, threshold, exclude_id)


def should_escalate(quick_matches: Sequence[CorpusMatch], escalation_threshold: float) -> bool:
    """True if any quick-check score is strictly above the escalation bar."""
    return any(m.similarity > escalation_threshold for m in quick_matches)


@dataclass
class TwoTierResult:
    """
    Result of a two-tier duplicate check.

    Attributes:
        matches: Final matches (semantic if escalated, otherwise lexical)
        tier: "lexical" or "semantic", whichever produced matches
        escalated: Whether the semantic tier was attempted
        signal: Dedup signal for the final matches
        is_blocking: Whether the final matches block submission
        semantic_error: Error message if the semantic tier failed and was degraded
    """
    matches: List[CorpusMatch]
    tier: str
    escalated: bool
    signal: DedupSignal
    is_blocking: bool
    semantic_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "tier": self.tier,
            "escalated": self.escalated,
            "signal": self.signal.value,
            "is_blocking": self.is_blocking,
            "semantic_error": self.semantic_error,
        }


def two_tier_check(
    title: str,
    abstract: Optional[str],
    corpus: Sequence[Document],
    embedder: EmbeddingService,
    policy: Optional[DedupPolicy] = None,
    degrade_semantic_errors: bool = False,
) -> TwoTierResult:
    """
    Lexical quick check, escalating to the semantic check on a strong hit.

    The semantic tier only runs when some quick score exceeds the escalation
    threshold, and its results replace the quick results.

    Args:
        title: Draft title
        abstract: Draft abstract
        corpus: Existing projects
        embedder: Embedding service
        policy: Thresholds (defaults if omitted)
        degrade_semantic_errors: Keep lexical results if the semantic tier fails

    Returns:
        TwoTierResult

    Raises:
        DedupError: From the semantic tier, unless degrade_semantic_errors is set
    """
    policy = policy or DedupPolicy()

    matches = quick_duplicate_check(title, abstract, corpus, threshold=policy.quick_threshold)
    tier = "lexical"
    escalated = should_escalate(matches, policy.escalation_threshold)
    semantic_error: Optional[str] = None

    if escalated:
        logger.info("[TwoTier] Strong lexical match - escalating to semantic check")
        try:
            matches = check_against_corpus(
                Document(title=title, abstract=abstract),
                corpus,
                embedder,
                threshold=policy.corpus_threshold,
            )
            tier = "semantic"
        except DedupError as e:
            if not degrade_semantic_errors:
                raise
            semantic_error = str(e)
            logger.warning(f"[TwoTier] Semantic check failed, keeping lexical results: {e}")

    result = TwoTierResult(
        matches=matches,
        tier=tier,
        escalated=escalated,
        signal=policy.signal_for(matches),
        is_blocking=policy.is_blocking(matches),
        semantic_error=semantic_error,
    )

    logger.info(
        f"[TwoTier] Result: tier={tier}, matches={len(matches)}, "
        f"signal={result.signal.value}, blocking={result.is_blocking}"
    )
    return result
