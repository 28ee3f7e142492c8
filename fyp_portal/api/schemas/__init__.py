"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .dedup import (
    DocumentIn,
    DocumentOut,
    ScanRequest,
    ScanResponse,
    DuplicatePair,
    CheckRequest,
    CheckResponse,
    SimilarProject,
    EvaluateResponse,
    StatusResponse,
)

__all__ = [
    "DocumentIn",
    "DocumentOut",
    "ScanRequest",
    "ScanResponse",
    "DuplicatePair",
    "CheckRequest",
    "CheckResponse",
    "SimilarProject",
    "EvaluateResponse",
    "StatusResponse",
]
