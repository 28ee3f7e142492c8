"""
Data model for duplicate detection.

Documents are borrowed views of caller data (a submitted list or rows from
the project store). Match records are created fresh per scan and never
persisted here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Sequence, Union

from .normalizer import combine_fields, join_authors, normalize_text


class DedupSignal(Enum):
    """
    Deduplication signal levels.

    LOW: No match at or above the applied threshold
    MEDIUM: Potential duplicate, advisory only
    HIGH: Similarity >= blocking threshold, submission should be blocked
    """
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class Document:
    """
    A project or paper being compared.

    Attributes:
        title: Project title
        abstract: Project abstract (may be None)
        authors: Author name or list of names (optional)
        id: Store identifier, None for unsaved candidates
        metadata: Extra store columns (year, student_name, ...)
    """
    title: str
    abstract: Optional[str] = None
    authors: Union[str, Sequence[str], None] = None
    id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def document_text(self, include_authors: bool = True) -> str:
        """Concatenate title, abstract and (optionally) authors."""
        authors = join_authors(self.authors) if include_authors else ""
        return combine_fields(self.title, self.abstract, authors)

    @property
    def normalized_text(self) -> str:
        return normalize_text(self.document_text())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        """Build a document from a JSON-like dict, keeping unknown keys as metadata."""
        known = {"id", "title", "abstract", "authors"}
        doc_id = data.get("id")
        return cls(
            title=data.get("title") or "",
            abstract=data.get("abstract"),
            authors=data.get("authors"),
            id=str(doc_id) if doc_id is not None else None,
            metadata={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "abstract": self.abstract,
        }
        if self.authors is not None:
            result["authors"] = (
                self.authors if isinstance(self.authors, str) else list(self.authors)
            )
        result.update(self.metadata)
        return result


@dataclass(frozen=True)
class SimilarityMatch:
    """
    Result of a pairwise comparison in batch mode.

    Attributes:
        first: Earlier document of the pair (input order)
        second: Later document of the pair
        similarity: Cosine similarity clamped to [0.0, 1.0]
        threshold: Threshold that was applied
    """
    first: Document
    second: Document
    similarity: float
    threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first": self.first.to_dict(),
            "second": self.second.to_dict(),
            "similarity": round(self.similarity, 4),
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class CorpusMatch:
    """
    An existing record found similar to a candidate.

    Attributes:
        record: The existing project
        similarity: Similarity score in [0.0, 1.0]
        method: "lexical" (Jaccard quick check) or "semantic" (embeddings)
    """
    record: Document
    similarity: float
    method: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "similarity": round(self.similarity, 4),
            "method": self.method,
        }


class ScanProgress(NamedTuple):
    """Transient (completed, total) pair delivered during a batch scan."""
    completed: int
    total: int

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return 100.0 * self.completed / self.total
