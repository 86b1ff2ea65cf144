"""
Correction Store
Creates and reviews analyst corrections to AI-generated report notes
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session
import structlog

from app.errors import NotFoundError, ValidationError
from app.models.correction import Correction
from app.models.enums import CorrectionStatus, ErrorCategory, ItemType

logger = structlog.get_logger(__name__)

ITEM_TYPES = {t.value for t in ItemType}
ERROR_CATEGORIES = {c.value for c in ErrorCategory}
REVIEW_OUTCOMES = {CorrectionStatus.approved.value, CorrectionStatus.rejected.value}


def _value(enum_or_str) -> str:
    return enum_or_str.value if hasattr(enum_or_str, "value") else enum_or_str


def _validate_common(item_type: str, agency: str, error_category: str, item_identifier: str) -> None:
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"Invalid item_type: {item_type}")
    if error_category not in ERROR_CATEGORIES:
        raise ValidationError(f"Invalid error_category: {error_category}")
    if not agency or not agency.strip():
        raise ValidationError("agency is required")
    if not item_identifier or not item_identifier.strip():
        raise ValidationError("item_identifier is required")


def create_correction(
    db: Session,
    report_id: str,
    item_type,
    item_identifier: str,
    agency: str,
    original_note: Optional[str],
    edited_note: str,
    error_category,
    editor_id: Optional[str] = None
) -> Correction:
    """
    Record a single analyst correction as pending review.

    An edit whose text is identical to the original note carries no signal
    and is rejected.

    Args:
        db: Database session
        report_id: Owning report
        item_type: violation, application or complaint
        item_identifier: Line item key within the report
        agency: Issuing agency code
        original_note: AI note before correction (None if the AI wrote none)
        edited_note: Analyst replacement
        error_category: Why the original note was wrong
        editor_id: Analyst identifier for audit

    Returns:
        The persisted Correction

    Raises:
        ValidationError: On invalid enum values, missing fields or an unchanged note
    """
    item_type = _value(item_type)
    error_category = _value(error_category)
    _validate_common(item_type, agency, error_category, item_identifier)

    edited = (edited_note or "").strip()
    if not edited:
        raise ValidationError("edited_note must not be empty")
    if edited == (original_note or "").strip():
        raise ValidationError("edited_note is identical to original_note")

    correction = Correction(
        report_id=report_id,
        item_type=item_type,
        item_identifier=item_identifier.strip(),
        agency=agency.strip().upper(),
        original_note=original_note or None,
        edited_note=edited,
        error_category=error_category,
        editor_id=editor_id,
        status=CorrectionStatus.pending.value,
    )
    db.add(correction)
    db.commit()
    db.refresh(correction)

    logger.info("correction_created",
                correction_id=correction.id,
                report_id=report_id,
                agency=correction.agency,
                item_type=item_type,
                error_category=error_category)

    return correction


def create_batch(
    db: Session,
    report_id: str,
    items: List[dict],
    error_category,
    editor_id: Optional[str] = None,
    batch_note: Optional[str] = None
) -> List[Correction]:
    """
    Record one correction per selected line item, sharing a batch_id.

    Rewrite mode (batch_note given) replaces every item's note with
    batch_note. Classify mode keeps each item's current note and only tags
    the error category; those rows are marked classification_only.

    Args:
        db: Database session
        report_id: Owning report
        items: Dicts with item_type, item_identifier, agency, current_note
        error_category: Category applied to every item
        editor_id: Analyst identifier
        batch_note: Replacement note for rewrite mode

    Returns:
        Persisted corrections, in input order

    Raises:
        ValidationError: On an empty batch or invalid item
    """
    if not items:
        raise ValidationError("Batch must contain at least one item")

    error_category = _value(error_category)
    rewrite = bool(batch_note and batch_note.strip())
    batch_id = str(uuid.uuid4())

    rows = []
    for item in items:
        item_type = _value(item.get("item_type"))
        _validate_common(item_type, item.get("agency"), error_category, item.get("item_identifier"))
        current_note = item.get("current_note") or None

        rows.append(Correction(
            report_id=report_id,
            item_type=item_type,
            item_identifier=item["item_identifier"].strip(),
            agency=item["agency"].strip().upper(),
            original_note=current_note,
            edited_note=batch_note.strip() if rewrite else (current_note or ""),
            error_category=error_category,
            editor_id=editor_id,
            batch_id=batch_id,
            classification_only=not rewrite,
            status=CorrectionStatus.pending.value,
        ))

    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)

    logger.info("correction_batch_created",
                batch_id=batch_id,
                report_id=report_id,
                count=len(rows),
                mode="rewrite" if rewrite else "classify",
                error_category=error_category)

    return rows


def review_correction(
    db: Session,
    correction_id: int,
    status: str,
    reviewer_id: Optional[str] = None
) -> Correction:
    """
    Approve or reject a pending correction.

    A correction is reviewed exactly once; only review fields change.

    Raises:
        ValidationError: Invalid outcome or correction already reviewed
        NotFoundError: Correction does not exist
    """
    if status not in REVIEW_OUTCOMES:
        raise ValidationError(f"Invalid review status: {status}")

    correction = db.query(Correction).filter(Correction.id == correction_id).first()
    if not correction:
        raise NotFoundError(f"Correction {correction_id} not found")

    if correction.status != CorrectionStatus.pending.value:
        raise ValidationError(
            f"Correction {correction_id} already reviewed with status: {correction.status}"
        )

    correction.status = status
    correction.reviewer_id = reviewer_id
    correction.reviewed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(correction)

    logger.info("correction_reviewed",
                correction_id=correction_id,
                status=status,
                reviewer_id=reviewer_id)

    return correction


def list_corrections(
    db: Session,
    status: Optional[str] = None,
    limit: int = 100
) -> List[Correction]:
    """Most recent corrections first, optionally filtered by status."""
    query = db.query(Correction)
    if status:
        query = query.filter(Correction.status == status)
    return query.order_by(Correction.created_at.desc(), Correction.id.desc()).limit(limit).all()


__all__ = [
    "create_correction",
    "create_batch",
    "review_correction",
    "list_corrections",
]
