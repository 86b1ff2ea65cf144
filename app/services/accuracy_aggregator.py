"""
Accuracy Aggregator

Recomputes per-segment edit rates from approved corrections and chains into
gap detection. A segment is (agency, item_type, violation_type).

Every run is a full recompute: stats derive entirely from durable correction
records, so re-running after any failure is the recovery path.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session
import structlog

from app.errors import PartialAggregationWarning
from app.models.accuracy_stat import AccuracyStat
from app.models.correction import Correction
from app.models.dd_report import DDReport
from app.models.enums import CorrectionStatus, ViolationType
from app.services.monitoring.error_tracking import add_breadcrumb, set_pipeline_context
from app.services.violation_classifier import classify_correction, infer_agency_from_note

logger = structlog.get_logger(__name__)

SegmentKey = Tuple[str, str, str]


class SegmentTally:
    """Approved corrections in one segment."""

    __slots__ = ("count", "categories")

    def __init__(self):
        self.count = 0
        self.categories: Counter = Counter()

    def add(self, error_category: str) -> None:
        self.count += 1
        self.categories[error_category] += 1

    @property
    def top_error_category(self) -> Optional[str]:
        if not self.categories:
            return None
        # most_common keeps first-seen order among ties
        return self.categories.most_common(1)[0][0]


def count_generated_notes(reports: List[DDReport]) -> Dict[Tuple[str, str], int]:
    """
    Count AI-generated notes per (agency, item_type) across reports.

    The agency of each note is inferred by matching its item_id against the
    report's own violations/applications payloads; unmatched notes count
    under UNKNOWN.
    """
    counts: Dict[Tuple[str, str], int] = Counter()
    for report in reports:
        notes = report.line_item_notes
        if not isinstance(notes, list):
            continue
        for note in notes:
            if not isinstance(note, dict):
                continue
            agency = infer_agency_from_note(note, report.violations_data, report.applications_data)
            counts[(agency, note.get("item_type") or "unknown")] += 1
    return counts


def group_corrections(corrections: List[Correction]) -> Dict[SegmentKey, SegmentTally]:
    groups: Dict[SegmentKey, SegmentTally] = {}
    for correction in corrections:
        key = (correction.agency, correction.item_type, classify_correction(correction))
        if key not in groups:
            groups[key] = SegmentTally()
        groups[key].add(correction.error_category)
    return groups


def compute_edit_rate(total_edits: int, notes_generated: Optional[int]) -> Tuple[float, int, bool]:
    """
    Edit rate for a segment.

    When the generation volume is unknown the edit count stands in as the
    denominator (rate 1.0) and the result is flagged as estimated.

    Returns:
        (edit_rate clamped to [0, 1] and rounded to 3 decimals,
         denominator used, denominator_is_estimated)
    """
    estimated = not notes_generated
    denominator = total_edits if estimated else notes_generated
    if denominator <= 0:
        return 0.0, 0, estimated
    rate = min(max(total_edits / denominator, 0.0), 1.0)
    return round(rate, 3), denominator, estimated


def _upsert_stat(
    db: Session,
    agency: str,
    item_type: str,
    violation_type: Optional[str],
    tally: SegmentTally,
    notes_generated: Optional[int],
    now: datetime
) -> AccuracyStat:
    edit_rate, denominator, estimated = compute_edit_rate(tally.count, notes_generated)

    query = db.query(AccuracyStat).filter(
        AccuracyStat.agency == agency,
        AccuracyStat.item_type == item_type,
    )
    if violation_type is None:
        query = query.filter(AccuracyStat.violation_type.is_(None))
    else:
        query = query.filter(AccuracyStat.violation_type == violation_type)
    stat = query.first()

    if stat is None:
        stat = AccuracyStat(agency=agency, item_type=item_type, violation_type=violation_type)
        db.add(stat)

    stat.total_notes_generated = denominator
    stat.total_edits = tally.count
    stat.denominator_is_estimated = estimated
    stat.edit_rate = edit_rate
    stat.top_error_category = tally.top_error_category
    stat.last_updated = now
    return stat


def recompute_accuracy_stats(
    db: Session,
    run_gap_detection: bool = True,
    gap_detector: Optional[Callable[[Session], list]] = None
) -> dict:
    """
    Recompute every AccuracyStat row, then run gap detection.

    Reading corrections or reports failing aborts before anything is written.
    A single segment failing to upsert is logged and skipped; the returned
    count covers successful upserts only. Gap detection failing is reported
    as gap_detection=None with a warning, never raised.

    Args:
        db: Database session
        run_gap_detection: Chain into gap detection after upserting
        gap_detector: Override for the chained stage (defaults to detect_gaps)

    Returns:
        {"stats_updated", "total_edits_processed", "gap_detection", "warnings"}
    """
    set_pipeline_context("accuracy_refresh")

    corrections = db.query(Correction).filter(
        Correction.status == CorrectionStatus.approved.value
    ).order_by(Correction.created_at.asc(), Correction.id.asc()).all()

    reports = db.query(DDReport).filter(DDReport.line_item_notes.isnot(None)).all()

    note_counts = count_generated_notes(reports)
    groups = group_corrections(corrections)

    add_breadcrumb("aggregation", "segments_grouped", data={
        "corrections": len(corrections), "reports": len(reports), "segments": len(groups)
    })

    now = datetime.now(timezone.utc)
    stats_updated = 0
    warnings: List[dict] = []

    for (agency, item_type, violation_type), tally in groups.items():
        stored_type = None if violation_type == ViolationType.general.value else violation_type
        try:
            with db.begin_nested():
                _upsert_stat(db, agency, item_type, stored_type, tally,
                             note_counts.get((agency, item_type)), now)
            stats_updated += 1
        except Exception as e:
            warning = PartialAggregationWarning(agency, item_type, stored_type, str(e))
            logger.warning("accuracy_stat_upsert_failed", **warning.to_dict())
            warnings.append(warning.to_dict())

    db.commit()

    logger.info("accuracy_stats_recomputed",
                stats_updated=stats_updated,
                total_edits_processed=len(corrections),
                segments=len(groups),
                failed_segments=len(warnings))

    gap_detection = None
    if run_gap_detection:
        if gap_detector is None:
            from app.services.gap_detector import detect_gaps
            gap_detector = detect_gaps
        try:
            created = gap_detector(db)
            gap_detection = {"candidates_created": len(created)}
        except Exception as e:
            db.rollback()
            logger.error("chained_gap_detection_failed", error=str(e), exc_info=True)
            warnings.append({"type": "gap_detection_failed", "error": str(e)})

    return {
        "stats_updated": stats_updated,
        "total_edits_processed": len(corrections),
        "gap_detection": gap_detection,
        "warnings": warnings,
    }


__all__ = [
    "count_generated_notes",
    "group_corrections",
    "compute_edit_rate",
    "recompute_accuracy_stats",
]
