"""
Dedup-specific exceptions.

Degenerate inputs (empty text, empty corpus, a single document) are not
errors; they produce empty or zero results.
"""

from typing import List, Optional


class DedupError(Exception):
    """Base exception for all duplicate detection errors."""
    pass


class ModelUnavailable(DedupError):
    """
    Raised when the embedding model cannot be loaded on any backend.

    Aborts the current scan only. The embedding service does not cache the
    failure, so the next call retries initialization.
    """

    def __init__(self, model_name: str, attempts: Optional[List[str]] = None):
        self.model_name = model_name
        self.attempts = attempts or []
        detail = "; ".join(self.attempts) if self.attempts else "no backend configured"
        super().__init__(f"Embedding model unavailable: {model_name} ({detail})")


class DimensionMismatch(DedupError):
    """
    Raised when two vectors of different length are compared.

    Indicates mixed model versions. Vectors are never truncated or padded.
    """

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vector dimension mismatch: {left} != {right}")


class CorpusFetchFailed(DedupError):
    """Raised when the project store query fails."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Corpus fetch failed: {reason}")
