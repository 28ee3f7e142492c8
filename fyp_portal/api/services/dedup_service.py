"""
Dedup service - business logic for dedup operations.

Embedding and store calls block, so each operation runs in the default
executor to keep the event loop responsive.
"""

import asyncio
import logging
from functools import partial
from typing import List, Optional

from fyp_portal.dedup.embedder import EmbeddingService
from fyp_portal.dedup.lexical import quick_duplicate_check
from fyp_portal.dedup.models import CorpusMatch, Document, SimilarityMatch
from fyp_portal.dedup.policy import DedupPolicy
from fyp_portal.dedup.scan import (
    TwoTierResult,
    check_against_corpus,
    fetch_corpus,
    find_duplicates,
    two_tier_check,
)
from fyp_portal.registry.project_registry import ProjectStore

logger = logging.getLogger(__name__)


async def _run_blocking(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


async def scan_documents(
    documents: List[Document],
    embedder: EmbeddingService,
    policy: DedupPolicy,
    threshold: Optional[float] = None,
) -> List[SimilarityMatch]:
    """
    Run a batch scan over submitted documents.

    Args:
        documents: Documents to compare pairwise
        embedder: Embedding service
        policy: Dedup policy (supplies the default threshold)
        threshold: Override threshold

    Returns:
        Duplicate pairs, highest similarity first
    """
    threshold = policy.batch_threshold if threshold is None else threshold

    def log_progress(completed: int, total: int) -> None:
        logger.debug(f"[DedupAPI] Scan progress {completed}/{total}")

    logger.info(f"[DedupAPI] Batch scan: {len(documents)} documents")
    return await _run_blocking(
        find_duplicates, documents, embedder, threshold, on_progress=log_progress
    )


async def check_corpus(
    candidate: Document,
    store: ProjectStore,
    embedder: EmbeddingService,
    policy: DedupPolicy,
    exclude_id: Optional[str] = None,
    threshold: Optional[float] = None,
) -> List[CorpusMatch]:
    """Semantic check of a draft against all stored projects."""
    threshold = policy.corpus_threshold if threshold is None else threshold

    corpus = await _run_blocking(
        fetch_corpus, store, exclude_id, policy.degrade_on_fetch_failure
    )
    return await _run_blocking(
        check_against_corpus, candidate, corpus, embedder, threshold, exclude_id
    )


async def quick_check(
    title: str,
    abstract: Optional[str],
    store: ProjectStore,
    policy: DedupPolicy,
    exclude_id: Optional[str] = None,
    threshold: Optional[float] = None,
) -> List[CorpusMatch]:
    """Lexical quick check of a draft against stored projects."""
    threshold = policy.quick_threshold if threshold is None else threshold

    corpus = await _run_blocking(
        fetch_corpus, store, exclude_id, policy.degrade_on_fetch_failure
    )
    return quick_duplicate_check(title, abstract, corpus, threshold=threshold)


async def evaluate_submission(
    title: str,
    abstract: Optional[str],
    store: ProjectStore,
    embedder: EmbeddingService,
    policy: DedupPolicy,
    exclude_id: Optional[str] = None,
) -> TwoTierResult:
    """
    Two-tier check used by the submission form.

    A failing semantic tier degrades to the lexical results instead of
    failing the request.
    """
    corpus = await _run_blocking(
        fetch_corpus, store, exclude_id, policy.degrade_on_fetch_failure
    )
    return await _run_blocking(
        two_tier_check,
        title,
        abstract,
        corpus,
        embedder,
        policy,
        degrade_semantic_errors=True,
    )


def build_message(result: TwoTierResult) -> Optional[str]:
    """Advisory message for the submission form."""
    if result.is_blocking:
        return (
            "Duplicate detected - submission blocked. Your project appears to be "
            "very similar to existing submissions."
        )
    if result.matches:
        return (
            f"Found {len(result.matches)} similar project(s). "
            "Please review to ensure your work is original."
        )
    return None
