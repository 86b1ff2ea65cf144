"""
Correction Model
Append-only record of analyst edits to AI-generated report notes
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Index
from sqlalchemy.sql import func
from app.database import Base


class Correction(Base):
    """
    One human edit to an AI-generated line-item note.

    Immutable once created except for the review fields (status,
    reviewed_at, reviewer_id). Only approved corrections feed accuracy
    aggregation, gap detection and few-shot example selection.
    """
    __tablename__ = "corrections"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Owning report (opaque reference, reports live with the report generator)
    report_id = Column(String(64), nullable=False, index=True)

    # Line item the note belongs to
    item_type = Column(String(20), nullable=False)  # violation, application, complaint
    item_identifier = Column(String(255), nullable=False)
    # Violation number, composite application key (BIS-123456) or complaint number

    agency = Column(String(20), nullable=False, index=True)  # DOB, ECB, HPD, FDNY, ...

    # Note content
    original_note = Column(Text, nullable=True)  # NULL when the AI wrote no note
    edited_note = Column(Text, nullable=False)

    error_category = Column(String(50), nullable=False, index=True)
    # Categories: too_vague, wrong_severity, missing_context, stale_treated_as_active,
    # wrong_agency_explanation, missing_note, factual_error, tone_style, knowledge_gap, other

    # Batch edits share a batch_id; classify-only rows keep the original text
    batch_id = Column(String(36), nullable=True, index=True)
    classification_only = Column(Boolean, default=False, nullable=False)

    # Review lifecycle: pending -> approved | rejected (exactly once)
    status = Column(String(20), default="pending", nullable=False, index=True)
    editor_id = Column(String(255), nullable=True)
    reviewer_id = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "report_id": self.report_id,
            "item_type": self.item_type,
            "item_identifier": self.item_identifier,
            "agency": self.agency,
            "original_note": self.original_note,
            "edited_note": self.edited_note,
            "error_category": self.error_category,
            "batch_id": self.batch_id,
            "classification_only": self.classification_only,
            "status": self.status,
            "editor_id": self.editor_id,
            "reviewer_id": self.reviewer_id,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Correction(id={self.id}, agency='{self.agency}', category='{self.error_category}', status='{self.status}')>"


# Approved corrections in a trailing window (gap detection)
Index('idx_corrections_status_created', Correction.status, Correction.created_at)
