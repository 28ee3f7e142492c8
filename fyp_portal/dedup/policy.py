"""
Duplicate detection policy.

Every threshold used by the scans, the two-tier check and the submission
gate lives here, overridable via environment.
"""

import logging
import os
from dataclasses import asdict, dataclass
from typing import Sequence, Union

from .models import CorpusMatch, DedupSignal, SimilarityMatch

logger = logging.getLogger("fyp_portal")

Match = Union[CorpusMatch, SimilarityMatch]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Policy] Invalid {name}={raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class DedupPolicy:
    """
    Thresholds for duplicate detection.

    Attributes:
        batch_threshold: Pairwise cosine threshold for batch scans
        corpus_threshold: Cosine threshold when checking against stored projects
        quick_threshold: Jaccard threshold for the lexical quick check
        escalation_threshold: Quick score that must be exceeded to run the semantic check
        blocking_threshold: Score at which a submission is blocked
        debounce_seconds: Quiet period before an interactive check runs
        min_title_length: Shorter titles are not checked interactively
        degrade_on_fetch_failure: Treat a failed store query as "no duplicates"
    """
    batch_threshold: float = 0.85
    corpus_threshold: float = 0.75
    quick_threshold: float = 0.6
    escalation_threshold: float = 0.7
    blocking_threshold: float = 0.85
    debounce_seconds: float = 1.0
    min_title_length: int = 5
    degrade_on_fetch_failure: bool = False

    @classmethod
    def from_env(cls) -> "DedupPolicy":
        """Load policy from DEDUP_* environment variables."""
        defaults = cls()
        return cls(
            batch_threshold=_env_float("DEDUP_BATCH_THRESHOLD", defaults.batch_threshold),
            corpus_threshold=_env_float("DEDUP_CORPUS_THRESHOLD", defaults.corpus_threshold),
            quick_threshold=_env_float("DEDUP_QUICK_THRESHOLD", defaults.quick_threshold),
            escalation_threshold=_env_float(
                "DEDUP_ESCALATION_THRESHOLD", defaults.escalation_threshold
            ),
            blocking_threshold=_env_float("DEDUP_BLOCKING_THRESHOLD", defaults.blocking_threshold),
            debounce_seconds=_env_float("DEDUP_DEBOUNCE_SECONDS", defaults.debounce_seconds),
            min_title_length=int(
                _env_float("DEDUP_MIN_TITLE_LENGTH", defaults.min_title_length)
            ),
            degrade_on_fetch_failure=os.getenv(
                "DEDUP_DEGRADE_ON_FETCH_FAILURE", "false"
            ).lower() == "true",
        )

    def is_blocking(self, matches: Sequence[Match]) -> bool:
        """True if any match reaches the blocking threshold."""
        return any(m.similarity >= self.blocking_threshold for m in matches)

    def signal_for(self, matches: Sequence[Match]) -> DedupSignal:
        """
        Determine dedup signal for a result set.

        Returns:
            HIGH if blocking, MEDIUM if any match was reported, else LOW
        """
        if self.is_blocking(matches):
            return DedupSignal.HIGH
        if matches:
            return DedupSignal.MEDIUM
        return DedupSignal.LOW

    def to_dict(self) -> dict:
        return asdict(self)
