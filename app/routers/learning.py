"""
Learning API Router
Accuracy refresh, knowledge gap detection, reference synthesis and prompt learning context
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import structlog

from app.database import get_db
from app.errors import FeedbackLoopError
from app.models.accuracy_stat import AccuracyStat
from app.models.schemas import (
    CandidateStatusUpdate,
    GenerateEntryRequest,
    LearningExamplesRequest,
    LearningExamplesResponse,
    ReviewRequest,
)
from app.services.accuracy_aggregator import recompute_accuracy_stats
from app.services.gap_detector import detect_gaps
from app.services.knowledge_synthesizer import (
    activate_entry,
    list_candidates,
    list_entries,
    review_entry,
    synthesize_entry,
    update_candidate_status,
)
from app.services.learning_context import build_learning_context
from app.services.llm_client import LLMClient

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/learning", tags=["learning"])


def get_llm_client() -> LLMClient:
    """Dependency for the text-generation client (overridden in tests)."""
    return LLMClient()


def _require_db(db: Optional[Session]) -> Session:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


@router.post("/refresh-accuracy-stats")
async def refresh_accuracy_stats(db: Session = Depends(get_db)):
    """
    Recompute every accuracy stat from approved corrections, then run gap detection.

    Returns:
        stats_updated, total_edits_processed, gap_detection ({candidates_created}
        or null when the chained stage failed) and per-segment warnings
    """
    db = _require_db(db)
    result = recompute_accuracy_stats(db)

    logger.info("accuracy_refresh_requested",
                stats_updated=result["stats_updated"],
                total_edits_processed=result["total_edits_processed"],
                warnings=len(result["warnings"]))

    return result


@router.post("/detect-knowledge-gaps")
async def detect_knowledge_gaps(db: Session = Depends(get_db)):
    """Run gap detection on its own. Only newly created candidates are returned."""
    db = _require_db(db)
    created = detect_gaps(db)
    return {
        "candidates_created": len(created),
        "candidates": [c.to_dict() for c in created],
    }


@router.post("/generate-knowledge-entry")
async def generate_knowledge_entry(
    request: GenerateEntryRequest,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client)
):
    """
    Draft a reference entry for a knowledge candidate.

    Errors:
        400: candidate_id missing or candidate rejected
        404: Candidate not found
        422: no correction exemplars available
        502: text generation failed (nothing persisted)
    """
    db = _require_db(db)
    try:
        entry = synthesize_entry(db, request.candidate_id, llm=llm)
    except FeedbackLoopError as e:
        logger.warning("knowledge_entry_generation_failed",
                       candidate_id=request.candidate_id,
                       error_type=type(e).__name__,
                       error=str(e))
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {"entry": entry.to_dict()}


@router.post("/learning-examples", response_model=LearningExamplesResponse)
async def learning_examples(
    request: LearningExamplesRequest,
    db: Session = Depends(get_db)
):
    """Few-shot examples, reference entries and confidence flags for report generation."""
    db = _require_db(db)
    return build_learning_context(db, agencies=request.agencies, violation_types=request.violation_types)


@router.get("/accuracy-stats")
async def get_accuracy_stats(
    agency: Optional[str] = Query(None, description="Filter by agency code"),
    db: Session = Depends(get_db)
):
    """Accuracy segments, highest edit rate first."""
    db = _require_db(db)
    query = db.query(AccuracyStat)
    if agency:
        query = query.filter(AccuracyStat.agency == agency.upper())
    stats = query.order_by(AccuracyStat.edit_rate.desc(), AccuracyStat.id.asc()).all()
    return {"total": len(stats), "stats": [s.to_dict() for s in stats]}


@router.get("/knowledge-candidates")
async def get_knowledge_candidates(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    db = _require_db(db)
    candidates = list_candidates(db, status=status, limit=limit)
    return {"total": len(candidates), "candidates": [c.to_dict() for c in candidates]}


@router.patch("/knowledge-candidates/{candidate_id}")
async def patch_knowledge_candidate(
    candidate_id: int,
    request: CandidateStatusUpdate,
    db: Session = Depends(get_db)
):
    """Manual candidate status change, e.g. dismissing a gap as rejected."""
    db = _require_db(db)
    try:
        candidate = update_candidate_status(db, candidate_id, request.status)
    except FeedbackLoopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"candidate": candidate.to_dict()}


@router.get("/knowledge-entries")
async def get_knowledge_entries(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    db = _require_db(db)
    entries = list_entries(db, status=status, limit=limit)
    return {"total": len(entries), "entries": [e.to_dict() for e in entries]}


@router.post("/knowledge-entries/{entry_id}/review")
async def review_knowledge_entry(
    entry_id: int,
    request: ReviewRequest,
    db: Session = Depends(get_db)
):
    """Approve or reject a draft entry. Approved entries become eligible for prompt injection."""
    db = _require_db(db)
    try:
        entry = review_entry(db, entry_id, request.status, reviewer_id=request.reviewer_id)
    except FeedbackLoopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"entry": entry.to_dict()}


@router.post("/knowledge-entries/{entry_id}/activate")
async def activate_knowledge_entry(
    entry_id: int,
    db: Session = Depends(get_db)
):
    db = _require_db(db)
    try:
        entry = activate_entry(db, entry_id)
    except FeedbackLoopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"entry": entry.to_dict()}
