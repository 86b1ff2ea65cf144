"""
Tests for the reference synthesizer and the entry review lifecycle
"""

import pytest

from app.errors import NoExemplarsError, NotFoundError, UpstreamGenerationError, ValidationError
from app.models import KnowledgeCandidate, KnowledgeEntry, PromptTemplate
from app.services.knowledge_synthesizer import (
    activate_entry,
    list_candidates,
    review_entry,
    select_exemplars,
    synthesize_entry,
    update_candidate_status,
)

from factories import make_candidate, make_correction, make_corrections


class TestSynthesizeEntry:

    def test_creates_draft_and_marks_candidate_drafted(self, db_session, fake_llm):
        candidate = make_candidate(db_session)
        make_corrections(db_session, 3, agency="HPD", edited_note="Elevator violation under HPD jurisdiction")

        entry = synthesize_entry(db_session, candidate.id, llm=fake_llm)

        assert entry.id is not None
        assert entry.status == "draft"
        assert entry.candidate_id == candidate.id
        assert entry.title == candidate.title
        assert entry.agency == "HPD"
        assert entry.violation_types == ["elevator"]
        assert entry.word_count == 350
        assert entry.usage_count == 0
        db_session.refresh(candidate)
        assert candidate.status == "drafted"
        assert fake_llm.calls[0]["feature"] == "knowledge_entry"

    def test_prompt_prefers_matching_corrections(self, db_session, fake_llm):
        candidate = make_candidate(db_session)
        make_correction(db_session, agency="HPD", item_identifier="HPD-1",
                        edited_note="Elevator certificate expired")
        make_correction(db_session, agency="HPD", item_identifier="HPD-2",
                        edited_note="Boiler inspection overdue")
        make_correction(db_session, agency="DOB", item_identifier="DOB-1",
                        edited_note="Elevator from another agency")

        synthesize_entry(db_session, candidate.id, llm=fake_llm)

        prompt = fake_llm.calls[0]["user_prompt"]
        assert "Elevator certificate expired" in prompt
        assert "Boiler inspection overdue" not in prompt
        assert "Elevator from another agency" not in prompt
        assert "300-600 words" in prompt

    def test_falls_back_to_all_agency_corrections(self, db_session, fake_llm):
        candidate = make_candidate(db_session, violation_types=["facade"], candidate_key="HPD::facade")
        make_correction(db_session, agency="HPD", edited_note="Boiler inspection overdue")

        synthesize_entry(db_session, candidate.id, llm=fake_llm)

        assert "Boiler inspection overdue" in fake_llm.calls[0]["user_prompt"]

    def test_no_exemplars(self, db_session, fake_llm):
        candidate = make_candidate(db_session)
        make_correction(db_session, agency="HPD", edited_note="Elevator", status="pending")

        with pytest.raises(NoExemplarsError):
            synthesize_entry(db_session, candidate.id, llm=fake_llm)

        assert fake_llm.calls == []
        assert db_session.query(KnowledgeEntry).count() == 0

    def test_generation_failure_leaves_no_entry(self, db_session, failing_llm):
        candidate = make_candidate(db_session)
        make_correction(db_session, agency="HPD", edited_note="Elevator certificate expired")

        with pytest.raises(UpstreamGenerationError):
            synthesize_entry(db_session, candidate.id, llm=failing_llm)

        assert db_session.query(KnowledgeEntry).count() == 0
        db_session.refresh(candidate)
        assert candidate.status == "detected"

    def test_missing_candidate_id(self, db_session, fake_llm):
        with pytest.raises(ValidationError):
            synthesize_entry(db_session, None, llm=fake_llm)

    def test_unknown_candidate(self, db_session, fake_llm):
        with pytest.raises(NotFoundError, match="Candidate not found"):
            synthesize_entry(db_session, 999, llm=fake_llm)

    def test_rejected_candidate(self, db_session, fake_llm):
        candidate = make_candidate(db_session, status="rejected")
        make_correction(db_session, agency="HPD", edited_note="Elevator certificate expired")

        with pytest.raises(ValidationError):
            synthesize_entry(db_session, candidate.id, llm=fake_llm)

    def test_classification_only_rows_are_not_exemplars(self, db_session, fake_llm):
        candidate = make_candidate(db_session)
        make_correction(db_session, agency="HPD", original_note="Elevator permit expired",
                        edited_note="Elevator permit expired", classification_only=True)
        make_correction(db_session, agency="HPD", edited_note="Elevator certificate lapsed in 2023")

        synthesize_entry(db_session, candidate.id, llm=fake_llm)

        prompt = fake_llm.calls[0]["user_prompt"]
        assert "Elevator permit expired" not in prompt
        assert "Elevator certificate lapsed in 2023" in prompt

    def test_only_classification_rows_means_no_exemplars(self, db_session, fake_llm):
        candidate = make_candidate(db_session)
        make_correction(db_session, agency="HPD", edited_note="Elevator", classification_only=True)

        with pytest.raises(NoExemplarsError):
            synthesize_entry(db_session, candidate.id, llm=fake_llm)

    def test_broken_prompt_template_is_validation_error(self, db_session, fake_llm):
        db_session.add(PromptTemplate(
            task_type="knowledge",
            name="reference_entry",
            version=2,
            user_prompt_template="Write about {{ borough }}",
            is_active=True,
        ))
        db_session.commit()
        candidate = make_candidate(db_session)
        make_correction(db_session, agency="HPD", edited_note="Elevator certificate expired")

        with pytest.raises(ValidationError, match="reference_entry is invalid"):
            synthesize_entry(db_session, candidate.id, llm=fake_llm)

        assert fake_llm.calls == []
        assert db_session.query(KnowledgeEntry).count() == 0

    def test_active_prompt_template_overrides_builtin(self, db_session, fake_llm):
        db_session.add(PromptTemplate(
            task_type="knowledge",
            name="reference_entry",
            version=2,
            system_prompt="Custom system",
            user_prompt_template="Write about {{ agency }} with {{ examples|length }} examples",
            is_active=True,
        ))
        db_session.commit()
        candidate = make_candidate(db_session)
        make_corrections(db_session, 2, agency="HPD", edited_note="Elevator certificate expired")

        synthesize_entry(db_session, candidate.id, llm=fake_llm)

        call = fake_llm.calls[0]
        assert call["system_prompt"] == "Custom system"
        assert call["user_prompt"] == "Write about HPD with 2 examples"


class TestSelectExemplars:

    def test_capped_at_fifteen(self, db_session):
        rows = make_corrections(db_session, 20, agency="HPD", edited_note="Elevator")
        assert len(select_exemplars(rows, ["elevator"])) == 15

    def test_no_violation_types_uses_all(self, db_session):
        rows = make_corrections(db_session, 2, agency="HPD", edited_note="Penalty imposed")
        assert select_exemplars(rows, []) == rows


class TestEntryLifecycle:

    def _drafted(self, db, llm):
        candidate = make_candidate(db)
        make_correction(db, agency="HPD", edited_note="Elevator certificate expired")
        return synthesize_entry(db, candidate.id, llm=llm)

    def test_approve_then_activate(self, db_session, fake_llm):
        entry = self._drafted(db_session, fake_llm)

        approved = review_entry(db_session, entry.id, "approved", reviewer_id="lead-1")
        assert approved.status == "approved"
        assert approved.approved_by == "lead-1"
        assert approved.approved_at is not None
        assert approved.candidate.status == "approved"

        active = activate_entry(db_session, entry.id)
        assert active.status == "active"
        assert active.candidate.status == "active"

    def test_reject(self, db_session, fake_llm):
        entry = self._drafted(db_session, fake_llm)

        rejected = review_entry(db_session, entry.id, "rejected")

        assert rejected.status == "rejected"
        assert rejected.approved_at is None
        assert rejected.candidate.status == "rejected"

    def test_revision_keeps_active_candidate(self, db_session, fake_llm):
        entry = self._drafted(db_session, fake_llm)
        review_entry(db_session, entry.id, "approved")
        activate_entry(db_session, entry.id)

        revision = synthesize_entry(db_session, entry.candidate_id, llm=fake_llm)
        candidate = db_session.get(KnowledgeCandidate, entry.candidate_id)
        assert candidate.status == "active"

        review_entry(db_session, revision.id, "rejected")

        db_session.refresh(candidate)
        assert candidate.status == "active"
        assert sorted(e.status for e in db_session.query(KnowledgeEntry)) == ["active", "rejected"]

    def test_cannot_activate_draft(self, db_session, fake_llm):
        entry = self._drafted(db_session, fake_llm)
        with pytest.raises(ValidationError):
            activate_entry(db_session, entry.id)

    def test_review_only_drafts(self, db_session, fake_llm):
        entry = self._drafted(db_session, fake_llm)
        review_entry(db_session, entry.id, "approved")
        with pytest.raises(ValidationError):
            review_entry(db_session, entry.id, "rejected")

    def test_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            review_entry(db_session, 999, "approved")


class TestCandidateQueue:

    def test_sorted_by_demand(self, db_session):
        make_candidate(db_session, candidate_key="HPD::elevator", demand_score=3)
        make_candidate(db_session, agency="DOB", candidate_key="DOB::boiler", demand_score=9)

        assert [c.demand_score for c in list_candidates(db_session)] == [9, 3]

    def test_manual_status_change(self, db_session):
        candidate = make_candidate(db_session)

        updated = update_candidate_status(db_session, candidate.id, "rejected")

        assert updated.status == "rejected"
        assert db_session.query(KnowledgeCandidate).filter_by(status="rejected").count() == 1

    def test_invalid_status(self, db_session):
        candidate = make_candidate(db_session)
        with pytest.raises(ValidationError):
            update_candidate_status(db_session, candidate.id, "archived")

    def test_reopen_blocked_by_open_candidate_with_same_key(self, db_session):
        rejected = make_candidate(db_session, status="rejected")
        make_candidate(db_session, status="detected")

        with pytest.raises(ValidationError, match="already open"):
            update_candidate_status(db_session, rejected.id, "detected")

        db_session.refresh(rejected)
        assert rejected.status == "rejected"

    def test_reopen_without_conflict(self, db_session):
        rejected = make_candidate(db_session, status="rejected")

        assert update_candidate_status(db_session, rejected.id, "detected").status == "detected"
