"""
DDReport Model
Read-only view of generated due-diligence reports, used to count AI notes per segment
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.database import Base, JSONType


class DDReport(Base):
    """
    Due-diligence report written by the report generator.

    Only the columns the accuracy aggregator reads are mapped here.
    """
    __tablename__ = "dd_reports"

    id = Column(String(64), primary_key=True)
    address = Column(String(500), nullable=True)

    violations_data = Column(JSONType, nullable=True)
    """
    List of violation records as fetched from city open data.

    Structure (relevant keys only):
    [{"id": "...", "violation_number": "...", "agency": "DOB"}]
    """

    applications_data = Column(JSONType, nullable=True)
    """
    List of permit applications.

    Structure (relevant keys only):
    [{"source": "BIS" | "DOB_NOW", "id": "...", "application_number": "..."}]
    """

    line_item_notes = Column(JSONType, nullable=True)
    """
    AI-generated notes, one per line item.

    Structure:
    [{"item_type": "violation", "item_id": "...", "note": "..."}]
    """

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        notes = len(self.line_item_notes or []) if isinstance(self.line_item_notes, list) else 0
        return f"<DDReport(id='{self.id}', notes={notes})>"
