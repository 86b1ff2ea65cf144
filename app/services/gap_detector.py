"""
Knowledge Gap Detector
Groups recent approved corrections and opens knowledge candidates for recurring gaps

A group is (agency, error_category, violation_type). It becomes a candidate
when it reaches its category's volume threshold, or when its
(agency, violation_type) segment already shows a high edit rate in
accuracy_stats. Candidates are deduplicated on agency + sorted violation
types against every open candidate, including ones created earlier in the
same run.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog

from app.config import settings
from app.models.accuracy_stat import AccuracyStat
from app.models.correction import Correction
from app.models.enums import (
    CandidatePriority,
    CandidateStatus,
    CorrectionStatus,
    ErrorCategory,
    KnowledgeType,
    OPEN_CANDIDATE_STATUSES,
    ViolationType,
)
from app.models.knowledge import KnowledgeCandidate
from app.services.monitoring.error_tracking import add_breadcrumb
from app.services.violation_classifier import classify_correction

logger = structlog.get_logger(__name__)

# Corrections per group needed to open a candidate. Categories not listed
# only qualify through a high segment edit rate.
GAP_THRESHOLDS = {
    ErrorCategory.knowledge_gap.value: 3,
    ErrorCategory.wrong_agency_explanation.value: 5,
    ErrorCategory.factual_error.value: 3,
}

TITLE_ACTIONS = {
    ErrorCategory.knowledge_gap.value: "Assessment Guide",
    ErrorCategory.wrong_agency_explanation.value: "Agency Explanation Reference",
    ErrorCategory.factual_error.value: "Regulation Fact Sheet",
    ErrorCategory.too_vague.value: "Specificity Guide",
    ErrorCategory.missing_context.value: "Context Guidelines",
}
DEFAULT_TITLE_ACTION = "Reference Guide"

MAX_SOURCE_EDIT_IDS = 20


class CorrectionGroup:
    """Approved corrections sharing (agency, error_category, violation_type)."""

    __slots__ = ("agency", "error_category", "violation_type", "edit_ids", "violation_types")

    def __init__(self, agency: str, error_category: str, violation_type: str):
        self.agency = agency
        self.error_category = error_category
        self.violation_type = violation_type
        self.edit_ids: List[int] = []
        self.violation_types: Set[str] = set()

    @property
    def count(self) -> int:
        return len(self.edit_ids)

    def add(self, correction_id: int, violation_type: str) -> None:
        self.edit_ids.append(correction_id)
        if violation_type != ViolationType.general.value:
            self.violation_types.add(violation_type)


def candidate_key(agency: str, violation_types) -> str:
    """Dedup key: agency plus sorted, unique violation types."""
    return f"{agency}::{','.join(sorted(set(violation_types or [])))}"


def compute_priority(group_count: int, total_edits: int) -> str:
    """
    Priority from group volume and its share of all approved edits in the window.

    critical: share > 0.5 or >= 10 corrections
    high:     share > 0.4 or >= 7 corrections
    medium:   otherwise
    """
    edit_rate = group_count / max(total_edits, 1)
    if edit_rate > 0.5 or group_count >= 10:
        return CandidatePriority.critical.value
    if edit_rate > 0.4 or group_count >= 7:
        return CandidatePriority.high.value
    return CandidatePriority.medium.value


def knowledge_type_for(error_category: str) -> str:
    if error_category == ErrorCategory.wrong_agency_explanation.value:
        return KnowledgeType.agency_explainer.value
    if error_category == ErrorCategory.factual_error.value:
        return KnowledgeType.regulation_reference.value
    return KnowledgeType.violation_guide.value


def build_title(agency: str, violation_types: List[str], error_category: str) -> str:
    """
    e.g. build_title("HPD", ["elevator"], "wrong_agency_explanation")
    -> "HPD Elevator Agency Explanation Reference"
    """
    if violation_types:
        type_str = " & ".join(vt.replace("_", " ") for vt in violation_types)
    else:
        type_str = "general items"
    action = TITLE_ACTIONS.get(error_category, DEFAULT_TITLE_ACTION)
    return f"{agency} {type_str[0].upper() + type_str[1:]} {action}"


def _group_corrections(corrections: List[Correction]) -> Dict[Tuple[str, str, str], CorrectionGroup]:
    groups: Dict[Tuple[str, str, str], CorrectionGroup] = {}
    for correction in corrections:
        violation_type = classify_correction(correction)
        key = (correction.agency, correction.error_category, violation_type)
        group = groups.get(key)
        if group is None:
            group = groups[key] = CorrectionGroup(*key)
        group.add(correction.id, violation_type)
    return groups


def _high_edit_rate_segments(db: Session) -> Set[Tuple[str, str]]:
    stats = db.query(AccuracyStat).filter(
        AccuracyStat.edit_rate > settings.gap_high_edit_rate
    ).all()
    return {(s.agency, s.violation_type or ViolationType.general.value) for s in stats}


def _open_candidate_keys(db: Session) -> Set[str]:
    candidates = db.query(KnowledgeCandidate).filter(
        KnowledgeCandidate.status.in_(OPEN_CANDIDATE_STATUSES)
    ).all()
    return {candidate_key(c.agency, c.violation_types) for c in candidates}


def detect_gaps(
    db: Session,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None
) -> List[KnowledgeCandidate]:
    """
    Detect knowledge gaps from approved corrections in the trailing window.

    Safe to re-run: existing open candidates are read fresh on every call and
    each insert is added to the run's key set immediately, so an unchanged
    correction set yields no new candidates.

    Args:
        db: Database session
        now: Reference time (defaults to current UTC time)
        window_days: Trailing window (defaults to settings.gap_window_days)

    Returns:
        Newly created candidates only
    """
    now = now or datetime.now(timezone.utc)
    window_days = window_days or settings.gap_window_days
    cutoff = now - timedelta(days=window_days)

    corrections = db.query(Correction).filter(
        Correction.status == CorrectionStatus.approved.value,
        Correction.created_at >= cutoff
    ).order_by(Correction.created_at.asc(), Correction.id.asc()).all()

    if not corrections:
        logger.info("gap_detection_skipped", reason="no_recent_approved_edits", window_days=window_days)
        return []

    groups = _group_corrections(corrections)
    high_rate_segments = _high_edit_rate_segments(db)
    existing_keys = _open_candidate_keys(db)
    total_edits = len(corrections)

    add_breadcrumb("gap_detection", "groups_built", data={
        "corrections": total_edits, "groups": len(groups), "open_candidates": len(existing_keys)
    })

    created: List[KnowledgeCandidate] = []

    for group in groups.values():
        threshold = GAP_THRESHOLDS.get(group.error_category)
        meets_threshold = threshold is not None and group.count >= threshold
        high_edit_rate = (group.agency, group.violation_type) in high_rate_segments
        if not (meets_threshold or high_edit_rate):
            continue

        violation_types = sorted(group.violation_types)
        key = candidate_key(group.agency, violation_types)
        if key in existing_keys:
            logger.debug("gap_candidate_duplicate_skipped", candidate_key=key,
                         error_category=group.error_category)
            continue

        candidate = KnowledgeCandidate(
            title=build_title(group.agency, violation_types, group.error_category),
            knowledge_type=knowledge_type_for(group.error_category),
            agency=group.agency,
            violation_types=violation_types,
            candidate_key=key,
            trigger_reason=(
                f"{group.count} corrections in {window_days} days, "
                f"primarily {group.error_category.replace('_', ' ')}"
            ),
            source_edit_ids=group.edit_ids[:MAX_SOURCE_EDIT_IDS],
            demand_score=group.count,
            priority=compute_priority(group.count, total_edits),
            status=CandidateStatus.detected.value,
        )

        try:
            with db.begin_nested():
                db.add(candidate)
        except IntegrityError:
            # Another run inserted the same key between our read and insert
            logger.warning("gap_candidate_conflict", candidate_key=key)
            existing_keys.add(key)
            continue

        existing_keys.add(key)
        created.append(candidate)

        logger.info("gap_candidate_created",
                    candidate_key=key,
                    title=candidate.title,
                    error_category=group.error_category,
                    demand_score=candidate.demand_score,
                    priority=candidate.priority,
                    via_edit_rate=high_edit_rate and not meets_threshold)

    db.commit()
    for candidate in created:
        db.refresh(candidate)

    logger.info("gap_detection_completed",
                corrections=total_edits,
                groups=len(groups),
                candidates_created=len(created))

    return created


__all__ = [
    "GAP_THRESHOLDS",
    "candidate_key",
    "compute_priority",
    "knowledge_type_for",
    "build_title",
    "detect_gaps",
]
