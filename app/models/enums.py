"""
Feedback Loop Enumerations
Fixed vocabularies shared by corrections, accuracy stats and knowledge records
"""

from enum import Enum


class ItemType(str, Enum):
    """Kind of report line item a note was written for."""
    violation = "violation"
    application = "application"
    complaint = "complaint"


class ErrorCategory(str, Enum):
    """
    Why an AI-generated note was wrong.

    Chosen by the analyst when submitting a correction.
    """
    too_vague = "too_vague"
    wrong_severity = "wrong_severity"
    missing_context = "missing_context"
    stale_treated_as_active = "stale_treated_as_active"
    wrong_agency_explanation = "wrong_agency_explanation"
    missing_note = "missing_note"
    factual_error = "factual_error"
    tone_style = "tone_style"
    knowledge_gap = "knowledge_gap"
    other = "other"


class CorrectionStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ViolationType(str, Enum):
    """Coarse topical bucket inferred from free text."""
    elevator = "elevator"
    facade = "facade"
    sprinkler = "sprinkler"
    boiler = "boiler"
    electrical = "electrical"
    plumbing = "plumbing"
    fire_safety = "fire_safety"
    construction = "construction"
    zoning = "zoning"
    lead_paint = "lead_paint"
    general = "general"


class KnowledgeType(str, Enum):
    violation_guide = "violation_guide"
    agency_explainer = "agency_explainer"
    regulation_reference = "regulation_reference"


class CandidatePriority(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"


class CandidateStatus(str, Enum):
    detected = "detected"
    drafted = "drafted"
    approved = "approved"
    active = "active"
    rejected = "rejected"


class EntryStatus(str, Enum):
    draft = "draft"
    approved = "approved"
    active = "active"
    rejected = "rejected"


# Candidates in these states block a new candidate with the same key
OPEN_CANDIDATE_STATUSES = (
    CandidateStatus.detected.value,
    CandidateStatus.drafted.value,
    CandidateStatus.approved.value,
    CandidateStatus.active.value,
)

# Entries in these states may be injected into generation prompts
INJECTABLE_ENTRY_STATUSES = (
    EntryStatus.approved.value,
    EntryStatus.active.value,
)
