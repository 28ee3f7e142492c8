"""
Dedup operations router.

Endpoints:
- GET /dedup/status - Embedding backend and policy status
- POST /dedup/scan - Find duplicate pairs within submitted documents
- POST /dedup/check - Semantic check of a draft against stored projects
- POST /dedup/quick - Lexical quick check of a draft against stored projects
- POST /dedup/evaluate - Two-tier check with signal and blocking decision
"""

from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException

from fyp_portal.dedup.embedder import EmbeddingService
from fyp_portal.dedup.errors import (
    CorpusFetchFailed,
    DedupError,
    ModelUnavailable,
)
from fyp_portal.dedup.models import CorpusMatch, Document
from fyp_portal.dedup.policy import DedupPolicy
from fyp_portal.registry.project_registry import ProjectRegistry

from ..dependencies import get_embedder, get_policy, get_registry
from ..schemas.dedup import (
    CheckRequest,
    CheckResponse,
    DocumentOut,
    DuplicatePair,
    EvaluateResponse,
    ScanRequest,
    ScanResponse,
    SimilarProject,
    StatusResponse,
)
from ..services import dedup_service

router = APIRouter()


def _raise_http(error: DedupError) -> NoReturn:
    """Map domain errors to HTTP errors."""
    if isinstance(error, ModelUnavailable):
        raise HTTPException(status_code=503, detail=str(error))
    if isinstance(error, CorpusFetchFailed):
        raise HTTPException(status_code=502, detail=str(error))
    raise HTTPException(status_code=500, detail=str(error))


def _similar_projects(matches: List[CorpusMatch]) -> List[SimilarProject]:
    return [
        SimilarProject(
            project=DocumentOut(**m.record.to_dict()),
            similarity=round(m.similarity, 4),
            method=m.method,
        )
        for m in matches
    ]


@router.get("/status", response_model=StatusResponse)
async def dedup_status(
    embedder: EmbeddingService = Depends(get_embedder),
    registry: ProjectRegistry = Depends(get_registry),
    policy: DedupPolicy = Depends(get_policy),
):
    """Embedding model, active backend and policy thresholds."""
    return StatusResponse(
        **embedder.get_status(),
        project_count=registry.count(),
        policy=policy.to_dict(),
    )


@router.post("/scan", response_model=ScanResponse)
async def scan_duplicates(
    request: ScanRequest,
    embedder: EmbeddingService = Depends(get_embedder),
    policy: DedupPolicy = Depends(get_policy),
):
    """
    Find near-duplicate pairs within the submitted documents.

    Raises:
        HTTPException: 503 if the embedding model is unavailable
    """
    documents = [Document.from_dict(d.model_dump()) for d in request.documents]

    try:
        matches = await dedup_service.scan_documents(
            documents, embedder, policy, threshold=request.threshold
        )
    except DedupError as e:
        _raise_http(e)

    n = len(documents)
    return ScanResponse(
        total_documents=n,
        comparisons=n * (n - 1) // 2,
        duplicates=[
            DuplicatePair(
                first=DocumentOut(**m.first.to_dict()),
                second=DocumentOut(**m.second.to_dict()),
                similarity=round(m.similarity, 4),
                threshold=m.threshold,
            )
            for m in matches
        ],
    )


@router.post("/check", response_model=CheckResponse)
async def check_duplicates(
    request: CheckRequest,
    embedder: EmbeddingService = Depends(get_embedder),
    registry: ProjectRegistry = Depends(get_registry),
    policy: DedupPolicy = Depends(get_policy),
):
    """
    Semantic check of a draft against stored projects.

    Raises:
        HTTPException: 502 on store failure, 503 if the model is unavailable
    """
    candidate = Document(title=request.title, abstract=request.abstract)

    try:
        matches = await dedup_service.check_corpus(
            candidate,
            registry,
            embedder,
            policy,
            exclude_id=request.exclude_id,
            threshold=request.threshold,
        )
    except DedupError as e:
        _raise_http(e)

    return CheckResponse(
        matches=_similar_projects(matches),
        signal=policy.signal_for(matches).value,
        is_blocking=policy.is_blocking(matches),
    )


@router.post("/quick", response_model=CheckResponse)
async def quick_check(
    request: CheckRequest,
    registry: ProjectRegistry = Depends(get_registry),
    policy: DedupPolicy = Depends(get_policy),
):
    """
    Lexical quick check of a draft against stored projects.

    Raises:
        HTTPException: 502 on store failure
    """
    try:
        matches = await dedup_service.quick_check(
            request.title,
            request.abstract,
            registry,
            policy,
            exclude_id=request.exclude_id,
            threshold=request.threshold,
        )
    except DedupError as e:
        _raise_http(e)

    return CheckResponse(
        matches=_similar_projects(matches),
        signal=policy.signal_for(matches).value,
        is_blocking=policy.is_blocking(matches),
    )


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_submission(
    request: CheckRequest,
    embedder: EmbeddingService = Depends(get_embedder),
    registry: ProjectRegistry = Depends(get_registry),
    policy: DedupPolicy = Depends(get_policy),
):
    """
    Two-tier duplicate check for the submission form.

    Runs the lexical quick check and escalates to the semantic check when a
    strong lexical match appears. Semantic failures fall back to the lexical
    results rather than failing the request.

    Raises:
        HTTPException: 502 on store failure
    """
    try:
        result = await dedup_service.evaluate_submission(
            request.title,
            request.abstract,
            registry,
            embedder,
            policy,
            exclude_id=request.exclude_id,
        )
    except DedupError as e:
        _raise_http(e)

    return EvaluateResponse(
        matches=_similar_projects(result.matches),
        signal=result.signal.value,
        is_blocking=result.is_blocking,
        tier=result.tier,
        escalated=result.escalated,
        semantic_error=result.semantic_error,
        message=dedup_service.build_message(result),
    )
