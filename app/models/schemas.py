"""
Pydantic schemas for the corrections and learning APIs
"""

from pydantic import BaseModel, Field
from typing import Optional, List

from app.models.enums import ErrorCategory, ItemType


class CorrectionCreate(BaseModel):
    """Single analyst edit to an AI-generated note"""
    report_id: str = Field(..., description="Owning report ID")
    item_type: ItemType
    item_identifier: str = Field(..., min_length=1, description="Violation number, application key or complaint number")
    agency: str = Field(..., min_length=1, description="Issuing agency code, e.g. DOB")
    original_note: Optional[str] = Field(None, description="AI note before correction (null if none was written)")
    edited_note: str = Field(..., description="Analyst replacement note")
    error_category: ErrorCategory
    editor_id: Optional[str] = None


class BatchItem(BaseModel):
    """One selected line item in a batch edit"""
    item_type: ItemType
    item_identifier: str = Field(..., min_length=1)
    agency: str = Field(..., min_length=1)
    current_note: Optional[str] = None


class BatchCorrectionCreate(BaseModel):
    """
    Batch edit over several line items of one report.

    With batch_note set every item's note is replaced (rewrite mode);
    without it the items are only tagged with error_category (classify mode).
    """
    report_id: str
    items: List[BatchItem] = Field(..., min_length=1)
    error_category: ErrorCategory
    batch_note: Optional[str] = None
    editor_id: Optional[str] = None


class ReviewRequest(BaseModel):
    """Approve or reject a pending correction or a draft knowledge entry"""
    status: str = Field(..., description="approved or rejected")
    reviewer_id: Optional[str] = None


class CandidateStatusUpdate(BaseModel):
    status: str


class GenerateEntryRequest(BaseModel):
    candidate_id: Optional[int] = None


class LearningExamplesRequest(BaseModel):
    agencies: List[str] = Field(default_factory=list)
    violation_types: List[str] = Field(default_factory=list)


class ConfidenceFlag(BaseModel):
    """Segment whose edit rate is high enough to warn the note generator"""
    agency: str
    violation_type: str
    edit_rate_percent: int
    top_error: str
    needs_review: bool


class LearningContextMeta(BaseModel):
    total_approved_edits: int
    categories_with_examples: int
    examples_count: int
    knowledge_entries_used: int
    flags_count: int


class LearningExamplesResponse(BaseModel):
    """Prompt learning context for the report generator"""
    few_shot_examples: List[str]
    knowledge_context: List[str]
    confidence_flags: List[ConfidenceFlag]
    meta: LearningContextMeta
