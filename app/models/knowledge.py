"""
Knowledge Models
Detected knowledge gaps (candidates) and the reference entries written to close them
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text
from app.database import Base, JSONType


class KnowledgeCandidate(Base):
    """
    A detected, not-yet-authored systemic gap in AI knowledge.

    Lifecycle: detected -> drafted (entry synthesized) -> approved | rejected
    (entry reviewed) -> active (entry activated).

    candidate_key is "{agency}::{sorted violation types}" and is unique among
    open candidates (detected, drafted, approved, active). The gap detector
    checks it before inserting; the partial unique index is the backstop for
    concurrent detection runs.
    """
    __tablename__ = "knowledge_candidates"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(255), nullable=False)
    knowledge_type = Column(String(50), nullable=False)
    # Types: violation_guide, agency_explainer, regulation_reference

    agency = Column(String(20), nullable=False, index=True)
    violation_types = Column(JSONType, nullable=False, default=list)  # sorted list of tags
    candidate_key = Column(String(255), nullable=False)

    trigger_reason = Column(Text, nullable=True)
    source_edit_ids = Column(JSONType, nullable=True)  # first 20 contributing correction IDs

    demand_score = Column(Integer, nullable=False, default=0)  # correction count at detection
    priority = Column(String(20), nullable=False, default="medium")  # critical, high, medium

    status = Column(String(20), nullable=False, default="detected", index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    entries = relationship("KnowledgeEntry", back_populates="candidate")

    __table_args__ = (
        Index(
            'idx_knowledge_candidates_open_key',
            'candidate_key',
            unique=True,
            postgresql_where=text("status IN ('detected', 'drafted', 'approved', 'active')"),
            sqlite_where=text("status IN ('detected', 'drafted', 'approved', 'active')"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "knowledge_type": self.knowledge_type,
            "agency": self.agency,
            "violation_types": list(self.violation_types or []),
            "trigger_reason": self.trigger_reason,
            "source_edit_ids": list(self.source_edit_ids or []),
            "demand_score": self.demand_score,
            "priority": self.priority,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<KnowledgeCandidate(id={self.id}, key='{self.candidate_key}', status='{self.status}', priority='{self.priority}')>"


class KnowledgeEntry(Base):
    """
    Reference document synthesized for a candidate.

    Created as draft by the reference synthesizer; only approved or active
    entries are injected into generation prompts. Mutated only by review,
    activation and usage-count increments.
    """
    __tablename__ = "knowledge_entries"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    candidate_id = Column(Integer, ForeignKey("knowledge_candidates.id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)  # Plain prose, no markup
    agency = Column(String(20), nullable=False, index=True)
    violation_types = Column(JSONType, nullable=False, default=list)
    word_count = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="draft", index=True)
    # Statuses: draft, approved, active, rejected

    usage_count = Column(Integer, nullable=False, default=0)

    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    generated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    candidate = relationship("KnowledgeCandidate", back_populates="entries")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "candidate_id": self.candidate_id,
            "title": self.title,
            "content": self.content,
            "agency": self.agency,
            "violation_types": list(self.violation_types or []),
            "word_count": self.word_count,
            "status": self.status,
            "usage_count": self.usage_count,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    def __repr__(self):
        return f"<KnowledgeEntry(id={self.id}, candidate_id={self.candidate_id}, status='{self.status}', usage={self.usage_count})>"
