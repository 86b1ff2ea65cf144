"""
AccuracyStat Model
Per-segment edit-rate statistics recomputed from approved corrections
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Index
from sqlalchemy.sql import func
from app.database import Base


class AccuracyStat(Base):
    """
    Edit rate for one (agency, item_type, violation_type) segment.

    Rows are fully rewritten on every recompute (idempotent upsert keyed by
    the segment triple). violation_type is NULL for unclassified ("general")
    corrections.

    denominator_is_estimated is True when the number of generated notes for
    the segment could not be reconstructed from reports and the correction
    count was used instead; an edit_rate of 1.0 with this flag set is an
    artifact of missing volume data, not a measured 100% edit rate.
    """
    __tablename__ = "accuracy_stats"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Segment
    agency = Column(String(20), nullable=False)
    item_type = Column(String(20), nullable=False)
    violation_type = Column(String(50), nullable=True)  # NULL = general / unclassified

    # Volumes
    total_notes_generated = Column(Integer, nullable=False, default=0)
    total_edits = Column(Integer, nullable=False, default=0)
    denominator_is_estimated = Column(Boolean, nullable=False, default=False)

    # Derived
    edit_rate = Column(Float, nullable=False, default=0.0)  # [0, 1], 3 decimals
    top_error_category = Column(String(50), nullable=True)

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        # One row per segment, backs the recompute upsert
        Index(
            'idx_accuracy_stats_segment',
            'agency', 'item_type', 'violation_type',
            unique=True,
            postgresql_nulls_not_distinct=True,
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agency": self.agency,
            "item_type": self.item_type,
            "violation_type": self.violation_type,
            "total_notes_generated": self.total_notes_generated,
            "total_edits": self.total_edits,
            "denominator_is_estimated": self.denominator_is_estimated,
            "edit_rate": self.edit_rate,
            "top_error_category": self.top_error_category,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    def __repr__(self):
        return f"<AccuracyStat({self.agency}/{self.item_type}/{self.violation_type or 'general'} rate={self.edit_rate})>"
