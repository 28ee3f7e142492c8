"""
Dedup operation schemas.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class DocumentIn(BaseModel):
    """A project or paper submitted for comparison."""

    id: Optional[str] = Field(default=None, description="Identifier, if the document is stored")
    title: str = Field(..., min_length=1, description="Project title")
    abstract: Optional[str] = Field(default=None, description="Project abstract")
    authors: Optional[Union[str, List[str]]] = Field(
        default=None, description="Author name or list of names"
    )


class DocumentOut(BaseModel):
    """Summary of a compared document."""

    id: Optional[str] = None
    title: str
    abstract: Optional[str] = None
    authors: Optional[Union[str, List[str]]] = None
    year: Optional[int] = None
    student_name: Optional[str] = None


class ScanRequest(BaseModel):
    """Request to find duplicates within a list of documents."""

    documents: List[DocumentIn] = Field(..., description="Documents to compare pairwise")
    threshold: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, description="Cosine threshold (policy default if omitted)"
    )


class DuplicatePair(BaseModel):
    """Two documents found to be near-duplicates."""

    first: DocumentOut
    second: DocumentOut
    similarity: float
    threshold: float


class ScanResponse(BaseModel):
    """Response from a batch scan."""

    total_documents: int
    comparisons: int
    duplicates: List[DuplicatePair] = Field(default=[])


class CheckRequest(BaseModel):
    """Request to check a draft project against stored projects."""

    title: str = Field(..., min_length=1, description="Draft title")
    abstract: Optional[str] = Field(default="", description="Draft abstract")
    exclude_id: Optional[str] = Field(
        default=None, description="Stored project to leave out (when editing it)"
    )
    threshold: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, description="Override the policy threshold"
    )


class SimilarProject(BaseModel):
    """A stored project similar to the draft."""

    project: DocumentOut
    similarity: float
    method: str = Field(..., description="lexical or semantic")


class CheckResponse(BaseModel):
    """Response from a corpus or quick check."""

    matches: List[SimilarProject] = Field(default=[])
    signal: str = Field(..., description="Dedup signal: LOW, MEDIUM, or HIGH")
    is_blocking: bool = Field(..., description="True if submission should be blocked")


class EvaluateResponse(CheckResponse):
    """Response from the two-tier check."""

    tier: str = Field(..., description="Tier that produced the matches")
    escalated: bool
    semantic_error: Optional[str] = None
    message: Optional[str] = Field(default=None, description="Advisory message")


class StatusResponse(BaseModel):
    """Embedding service and policy status."""

    model: str
    strategies: List[str]
    active_backend: Optional[str] = None
    loaded: bool
    dimension: Optional[int] = None
    project_count: int
    policy: Dict[str, Any]
