"""
Corrections API Router
Analyst edits to AI-generated notes and their review
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import structlog

from app.database import get_db
from app.errors import FeedbackLoopError
from app.models.schemas import BatchCorrectionCreate, CorrectionCreate, ReviewRequest
from app.services import corrections as correction_store

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/corrections", tags=["corrections"])


def _require_db(db: Optional[Session]) -> Session:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


@router.post("", status_code=201)
async def create_correction(
    request: CorrectionCreate,
    db: Session = Depends(get_db)
):
    """
    Record a single analyst correction (status pending).

    Returns 400 when the edited note is empty or unchanged.
    """
    db = _require_db(db)
    try:
        correction = correction_store.create_correction(
            db,
            report_id=request.report_id,
            item_type=request.item_type,
            item_identifier=request.item_identifier,
            agency=request.agency,
            original_note=request.original_note,
            edited_note=request.edited_note,
            error_category=request.error_category,
            editor_id=request.editor_id,
        )
    except FeedbackLoopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {"correction": correction.to_dict()}


@router.post("/batch", status_code=201)
async def create_batch(
    request: BatchCorrectionCreate,
    db: Session = Depends(get_db)
):
    """
    Record one correction per selected line item.

    Rewrite mode when batch_note is given, classify mode otherwise.
    """
    db = _require_db(db)
    try:
        rows = correction_store.create_batch(
            db,
            report_id=request.report_id,
            items=[item.model_dump() for item in request.items],
            error_category=request.error_category,
            editor_id=request.editor_id,
            batch_note=request.batch_note,
        )
    except FeedbackLoopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {
        "batch_id": rows[0].batch_id,
        "count": len(rows),
        "corrections": [row.to_dict() for row in rows],
    }


@router.get("")
async def list_corrections(
    status: Optional[str] = Query(None, description="Filter by pending, approved or rejected"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """List corrections, most recent first."""
    db = _require_db(db)
    rows = correction_store.list_corrections(db, status=status, limit=limit)

    logger.info("corrections_listed", status=status, returned=len(rows))

    return {"total": len(rows), "corrections": [row.to_dict() for row in rows]}


@router.post("/{correction_id}/review")
async def review_correction(
    correction_id: int,
    request: ReviewRequest,
    db: Session = Depends(get_db)
):
    """
    Approve or reject a pending correction.

    Only approved corrections feed accuracy stats and gap detection.
    """
    db = _require_db(db)
    try:
        correction = correction_store.review_correction(
            db, correction_id, request.status, reviewer_id=request.reviewer_id
        )
    except FeedbackLoopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {"correction": correction.to_dict()}
