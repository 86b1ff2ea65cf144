"""
Tests for the accuracy aggregator

Covers:
- Edit-rate computation and the estimated-denominator fallback
- Note volumes reconstructed from report payloads
- Idempotent upsert per segment
- Per-segment failures recorded as warnings
- Chained gap detection (including failure of the chained stage)
"""

from app.models import AccuracyStat, KnowledgeCandidate
from app.services import accuracy_aggregator
from app.services.accuracy_aggregator import (
    compute_edit_rate,
    count_generated_notes,
    recompute_accuracy_stats,
)

from factories import make_correction, make_corrections, make_report


class TestComputeEditRate:

    def test_measured_rate(self):
        assert compute_edit_rate(3, 10) == (0.3, 10, False)

    def test_rounded_to_three_decimals(self):
        assert compute_edit_rate(1, 3) == (0.333, 3, False)

    def test_clamped_to_one(self):
        assert compute_edit_rate(15, 10) == (1.0, 10, False)

    def test_unknown_volume_falls_back_to_edit_count(self):
        assert compute_edit_rate(4, None) == (1.0, 4, True)
        assert compute_edit_rate(4, 0) == (1.0, 4, True)

    def test_no_edits(self):
        assert compute_edit_rate(0, None) == (0.0, 0, True)


def _report_with_notes(db):
    return make_report(
        db,
        violations_data=[
            {"id": "V-1", "agency": "DOB"},
            {"id": "V-2", "agency": "DOB"},
            {"id": "V-3", "agency": "DOB"},
            {"id": "V-4", "agency": "DOB"},
            {"id": "E-1", "agency": "ECB"},
        ],
        applications_data=[{"source": "BIS", "id": "121234567"}],
        line_item_notes=[
            {"item_type": "violation", "item_id": "V-1", "note": "..."},
            {"item_type": "violation", "item_id": "V-2", "note": "..."},
            {"item_type": "violation", "item_id": "V-3", "note": "..."},
            {"item_type": "violation", "item_id": "V-4", "note": "..."},
            {"item_type": "violation", "item_id": "E-1", "note": "..."},
            {"item_type": "application", "item_id": "BIS-121234567", "note": "..."},
            {"item_type": "complaint", "item_id": "C-1", "note": "..."},
        ],
    )


class TestCountGeneratedNotes:

    def test_counts_per_agency_and_item_type(self, db_session):
        report = _report_with_notes(db_session)

        counts = count_generated_notes([report])

        assert counts[("DOB", "violation")] == 4
        assert counts[("ECB", "violation")] == 1
        assert counts[("DOB", "application")] == 1
        assert counts[("UNKNOWN", "complaint")] == 1

    def test_ignores_malformed_notes(self, db_session):
        report = make_report(db_session, line_item_notes={"not": "a list"})
        assert count_generated_notes([report]) == {}


class TestRecomputeAccuracyStats:

    def test_edit_rate_uses_report_volume(self, db_session):
        _report_with_notes(db_session)
        make_correction(db_session, item_identifier="V-1", agency="DOB",
                        edited_note="Elevator test overdue", error_category="too_vague")

        result = recompute_accuracy_stats(db_session, run_gap_detection=False)

        assert result["stats_updated"] == 1
        assert result["total_edits_processed"] == 1
        stat = db_session.query(AccuracyStat).one()
        assert (stat.agency, stat.item_type, stat.violation_type) == ("DOB", "violation", "elevator")
        assert stat.total_notes_generated == 4
        assert stat.total_edits == 1
        assert stat.edit_rate == 0.25
        assert stat.denominator_is_estimated is False
        assert stat.top_error_category == "too_vague"

    def test_unknown_volume_is_flagged_estimated(self, db_session):
        make_corrections(db_session, 2, agency="HPD", edited_note="Boiler defect",
                         error_category="factual_error")

        recompute_accuracy_stats(db_session, run_gap_detection=False)

        stat = db_session.query(AccuracyStat).one()
        assert stat.edit_rate == 1.0
        assert stat.total_notes_generated == 2
        assert stat.denominator_is_estimated is True

    def test_general_corrections_stored_without_violation_type(self, db_session):
        make_correction(db_session, edited_note="Penalty imposed, hearing adjourned")

        recompute_accuracy_stats(db_session, run_gap_detection=False)

        assert db_session.query(AccuracyStat).one().violation_type is None

    def test_only_approved_corrections_count(self, db_session):
        make_correction(db_session, status="pending")
        make_correction(db_session, status="rejected")

        result = recompute_accuracy_stats(db_session, run_gap_detection=False)

        assert result["stats_updated"] == 0
        assert result["total_edits_processed"] == 0
        assert db_session.query(AccuracyStat).count() == 0

    def test_top_error_category_is_most_frequent(self, db_session):
        make_correction(db_session, edited_note="Boiler", error_category="too_vague")
        make_correction(db_session, edited_note="Boiler", error_category="wrong_severity")
        make_correction(db_session, edited_note="Boiler", error_category="wrong_severity")

        recompute_accuracy_stats(db_session, run_gap_detection=False)

        assert db_session.query(AccuracyStat).one().top_error_category == "wrong_severity"

    def test_recompute_is_idempotent(self, db_session):
        make_correction(db_session, edited_note="Boiler defect")
        make_correction(db_session, edited_note="Penalty imposed")

        first = recompute_accuracy_stats(db_session, run_gap_detection=False)
        second = recompute_accuracy_stats(db_session, run_gap_detection=False)

        assert first["stats_updated"] == second["stats_updated"] == 2
        assert db_session.query(AccuracyStat).count() == 2

    def test_segment_failure_is_skipped_with_warning(self, db_session, monkeypatch):
        make_correction(db_session, agency="DOB", edited_note="Boiler defect")
        make_correction(db_session, agency="ECB", edited_note="Boiler defect")

        real_upsert = accuracy_aggregator._upsert_stat

        def flaky_upsert(db, agency, *args, **kwargs):
            if agency == "ECB":
                raise RuntimeError("deadlock detected")
            return real_upsert(db, agency, *args, **kwargs)

        monkeypatch.setattr(accuracy_aggregator, "_upsert_stat", flaky_upsert)

        result = recompute_accuracy_stats(db_session, run_gap_detection=False)

        assert result["stats_updated"] == 1
        assert result["warnings"] == [{
            "type": "partial_aggregation",
            "agency": "ECB",
            "item_type": "violation",
            "violation_type": "boiler",
            "error": "deadlock detected",
        }]
        assert [s.agency for s in db_session.query(AccuracyStat).all()] == ["DOB"]

    def test_chains_into_gap_detection(self, db_session):
        make_corrections(db_session, 3, agency="HPD", edited_note="Elevator inspection history",
                         error_category="knowledge_gap")

        result = recompute_accuracy_stats(db_session)

        assert result["gap_detection"] == {"candidates_created": 1}
        assert db_session.query(KnowledgeCandidate).count() == 1

    def test_gap_detection_failure_is_not_fatal(self, db_session):
        make_correction(db_session, edited_note="Boiler defect")

        def broken_detector(db):
            raise RuntimeError("gap detector unavailable")

        result = recompute_accuracy_stats(db_session, gap_detector=broken_detector)

        assert result["stats_updated"] == 1
        assert result["gap_detection"] is None
        assert result["warnings"][-1]["type"] == "gap_detection_failed"
        assert db_session.query(AccuracyStat).count() == 1
