"""
Deduplication module - project similarity scoring.

Contains two comparison strategies:
1. Lexical (Jaccard token overlap) - instant, for on-keystroke checks
2. Semantic (embedding cosine similarity) - for batch scans and escalation
"""

from .errors import (
    DedupError,
    ModelUnavailable,
    DimensionMismatch,
    CorpusFetchFailed,
)
from .models import (
    Document,
    SimilarityMatch,
    CorpusMatch,
    ScanProgress,
    DedupSignal,
)
from .normalizer import normalize_text, tokenize
from .lexical import lexical_similarity, quick_duplicate_check
from .vectors import cosine_similarity, l2_normalize
from .embedder import (
    EmbeddingService,
    EmbeddingBackend,
    TransformersBackend,
    OllamaBackend,
    BackendStrategy,
    build_strategies,
    DEFAULT_EMBED_MODEL,
)
from .policy import DedupPolicy
from .scan import (
    find_duplicates,
    check_against_corpus,
    check_project_for_duplicates,
    fetch_corpus,
    should_escalate,
    two_tier_check,
    TwoTierResult,
)
from .interactive import InteractiveChecker, CheckSnapshot, CheckState

__all__ = [
    # Errors
    "DedupError",
    "ModelUnavailable",
    "DimensionMismatch",
    "CorpusFetchFailed",
    # Models
    "Document",
    "SimilarityMatch",
    "CorpusMatch",
    "ScanProgress",
    "DedupSignal",
    # Scorers
    "normalize_text",
    "tokenize",
    "lexical_similarity",
    "quick_duplicate_check",
    "cosine_similarity",
    "l2_normalize",
    # Embedder
    "EmbeddingService",
    "EmbeddingBackend",
    "TransformersBackend",
    "OllamaBackend",
    "BackendStrategy",
    "build_strategies",
    "DEFAULT_EMBED_MODEL",
    # Orchestration
    "DedupPolicy",
    "find_duplicates",
    "check_against_corpus",
    "check_project_for_duplicates",
    "fetch_corpus",
    "should_escalate",
    "two_tier_check",
    "TwoTierResult",
    "InteractiveChecker",
    "CheckSnapshot",
    "CheckState",
]
