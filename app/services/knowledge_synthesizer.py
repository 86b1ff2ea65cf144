"""
Reference Synthesizer
Drafts a reference entry for a knowledge candidate from matching analyst corrections,
and carries entries through review and activation
"""

from datetime import datetime, timezone
from typing import List, Optional

from jinja2 import TemplateError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog

from app.errors import NoExemplarsError, NotFoundError, ValidationError
from app.models.correction import Correction
from app.models.enums import OPEN_CANDIDATE_STATUSES, CandidateStatus, CorrectionStatus, EntryStatus
from app.models.knowledge import KnowledgeCandidate, KnowledgeEntry
from app.services.llm_client import LLMClient
from app.services.monitoring.error_tracking import add_breadcrumb, set_pipeline_context
from app.services.prompt_manager import get_active_prompt
from app.services.prompt_renderer import PromptRenderer
from app.services.violation_classifier import matches_any_type

logger = structlog.get_logger(__name__)

MAX_RELATED_CORRECTIONS = 50
MAX_EXEMPLARS = 15
EXEMPLAR_NOTE_CHARS = 300

# A new draft for a reviewed candidate is a revision; the candidate keeps its status
REVISABLE_CANDIDATE_STATUSES = (CandidateStatus.approved.value, CandidateStatus.active.value)

PROMPT_TASK_TYPE = "knowledge"
PROMPT_NAME = "reference_entry"

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert NYC building compliance analyst writing internal reference "
    "material for an AI system. Your guides will be injected into AI prompts to improve "
    "future note generation. Write factually and precisely. Reference specific NYC codes, "
    "local laws, and agency procedures where relevant."
)

DEFAULT_USER_TEMPLATE = """Based on the following corrections made by expert compliance analysts, write a reference guide that an AI should use when writing notes about {{ agency }} {{ violation_types_text }} items.

The guide should explain:
1. What this violation type means in plain English
2. Typical severity levels and what determines severity
3. What penalty ranges are normal for this type
4. What a buyer, attorney, or title closer needs to know about this type of item
5. Common misconceptions that the AI has been getting wrong (based on the corrections below)
6. Key NYC regulations or local laws that apply

IMPORTANT: Write factually. Do not use advisory language. State what things ARE, not what someone SHOULD do.

Here are the analyst corrections that triggered this knowledge gap:

{% for example in examples %}
{{ loop.index }}. Original: "{{ example.original }}"
   Corrected: "{{ example.corrected }}"
   Error Type: {{ example.error_category }}
   Item: {{ example.item_identifier }}

{% endfor %}
The guide should be 300-600 words, written in clear paragraphs. No markdown formatting."""


def select_exemplars(corrections: List[Correction], violation_types: List[str]) -> List[Correction]:
    """
    Pick up to 15 exemplars, preferring corrections that mention the
    candidate's violation types. Falls back to the unfiltered list when
    nothing matches.
    """
    if violation_types:
        matching = [
            c for c in corrections
            if matches_any_type(f"{c.item_identifier} {c.edited_note}", violation_types)
        ]
    else:
        matching = corrections
    return (matching or corrections)[:MAX_EXEMPLARS]


def _exemplar_vars(correction: Correction) -> dict:
    return {
        "original": (correction.original_note or "(no note)")[:EXEMPLAR_NOTE_CHARS],
        "corrected": (correction.edited_note or "")[:EXEMPLAR_NOTE_CHARS],
        "error_category": correction.error_category,
        "item_identifier": correction.item_identifier,
    }


def _get_candidate(db: Session, candidate_id: Optional[int]) -> KnowledgeCandidate:
    if candidate_id is None:
        raise ValidationError("Missing candidate_id")
    candidate = db.query(KnowledgeCandidate).filter(KnowledgeCandidate.id == candidate_id).first()
    if not candidate:
        raise NotFoundError("Candidate not found")
    return candidate


def synthesize_entry(
    db: Session,
    candidate_id: Optional[int],
    llm: Optional[LLMClient] = None
) -> KnowledgeEntry:
    """
    Generate a draft KnowledgeEntry for a candidate.

    Nothing is written unless generation succeeds: on any failure the
    candidate keeps its status and the call can simply be retried.

    Args:
        db: Database session
        candidate_id: KnowledgeCandidate ID
        llm: Text-generation client (defaults to a configured LLMClient)

    Returns:
        The persisted draft entry. The candidate is moved to drafted unless
        it is already approved or active, in which case the draft is a revision

    Raises:
        ValidationError: candidate_id missing, candidate rejected, or invalid prompt template
        NotFoundError: candidate does not exist
        NoExemplarsError: no approved corrections for the candidate's agency
        UpstreamGenerationError: generation failed
    """
    candidate = _get_candidate(db, candidate_id)
    if candidate.status == CandidateStatus.rejected.value:
        raise ValidationError(f"Candidate {candidate_id} was rejected")

    set_pipeline_context("knowledge_synthesis", candidate_id=candidate.id)

    related = db.query(Correction).filter(
        Correction.status == CorrectionStatus.approved.value,
        Correction.agency == candidate.agency,
        Correction.classification_only.is_(False),
    ).order_by(Correction.created_at.desc(), Correction.id.desc()).limit(MAX_RELATED_CORRECTIONS).all()

    violation_types = list(candidate.violation_types or [])
    exemplars = select_exemplars(related, violation_types)
    if not exemplars:
        raise NoExemplarsError(candidate.id, candidate.agency)

    add_breadcrumb("knowledge_synthesis", "exemplars_selected", data={
        "candidate_id": candidate.id, "related": len(related), "exemplars": len(exemplars)
    })

    prompt_template = get_active_prompt(db, PROMPT_TASK_TYPE, PROMPT_NAME)
    system_prompt = (prompt_template.system_prompt if prompt_template else None) or DEFAULT_SYSTEM_PROMPT
    user_template = prompt_template.user_prompt_template if prompt_template else DEFAULT_USER_TEMPLATE

    try:
        user_prompt = PromptRenderer().render(
            user_template,
            variables={
                "agency": candidate.agency,
                "violation_types_text": ", ".join(violation_types) or "general",
                "examples": [_exemplar_vars(c) for c in exemplars],
                "title": candidate.title,
            },
            template_name=f"{PROMPT_TASK_TYPE}.{PROMPT_NAME}"
        )
    except TemplateError as e:
        raise ValidationError(f"Prompt template {PROMPT_TASK_TYPE}.{PROMPT_NAME} is invalid: {e}") from e

    llm = llm or LLMClient()
    content = llm.generate_text(
        system_prompt,
        user_prompt,
        feature="knowledge_entry",
        db=db,
        model=prompt_template.model_name if prompt_template else None,
        max_tokens=prompt_template.max_tokens if prompt_template else None,
        metadata={"candidate_id": candidate.id, "exemplars": len(exemplars)},
    )

    entry = KnowledgeEntry(
        candidate_id=candidate.id,
        title=candidate.title,
        content=content,
        agency=candidate.agency,
        violation_types=violation_types,
        word_count=len(content.split()),
        status=EntryStatus.draft.value,
        usage_count=0,
    )

    try:
        db.add(entry)
        if candidate.status not in REVISABLE_CANDIDATE_STATUSES:
            candidate.status = CandidateStatus.drafted.value
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(entry)

    logger.info("knowledge_entry_drafted",
                entry_id=entry.id,
                candidate_id=candidate.id,
                word_count=entry.word_count,
                exemplars=len(exemplars))

    return entry


def _get_entry(db: Session, entry_id: int) -> KnowledgeEntry:
    entry = db.query(KnowledgeEntry).filter(KnowledgeEntry.id == entry_id).first()
    if not entry:
        raise NotFoundError(f"Knowledge entry {entry_id} not found")
    return entry


def review_entry(
    db: Session,
    entry_id: int,
    status: str,
    reviewer_id: Optional[str] = None
) -> KnowledgeEntry:
    """
    Approve or reject a draft entry. A drafted candidate follows the decision.

    Raises:
        ValidationError: Invalid outcome or entry not in draft
        NotFoundError: Entry does not exist
    """
    if status not in (EntryStatus.approved.value, EntryStatus.rejected.value):
        raise ValidationError(f"Invalid review status: {status}")

    entry = _get_entry(db, entry_id)
    if entry.status != EntryStatus.draft.value:
        raise ValidationError(f"Knowledge entry {entry_id} is {entry.status}, not draft")

    entry.status = status
    if status == EntryStatus.approved.value:
        entry.approved_by = reviewer_id
        entry.approved_at = datetime.now(timezone.utc)
    else:
        entry.approved_by = None
        entry.approved_at = None

    # candidate statuses share approved/rejected; a revision leaves a reviewed candidate alone
    if entry.candidate is not None and entry.candidate.status == CandidateStatus.drafted.value:
        entry.candidate.status = status

    db.commit()
    db.refresh(entry)

    logger.info("knowledge_entry_reviewed", entry_id=entry_id, status=status, reviewer_id=reviewer_id)
    return entry


def activate_entry(db: Session, entry_id: int) -> KnowledgeEntry:
    """
    Mark an approved entry active; its candidate becomes active too.

    Raises:
        ValidationError: Entry not approved
        NotFoundError: Entry does not exist
    """
    entry = _get_entry(db, entry_id)
    if entry.status != EntryStatus.approved.value:
        raise ValidationError(f"Only approved entries can be activated (entry {entry_id} is {entry.status})")

    entry.status = EntryStatus.active.value
    if entry.candidate is not None:
        entry.candidate.status = CandidateStatus.active.value

    db.commit()
    db.refresh(entry)

    logger.info("knowledge_entry_activated", entry_id=entry_id, candidate_id=entry.candidate_id)
    return entry


def update_candidate_status(db: Session, candidate_id: int, status: str) -> KnowledgeCandidate:
    """Manual status change from the review queue, e.g. dismissing a candidate as rejected."""
    valid = {s.value for s in CandidateStatus}
    if status not in valid:
        raise ValidationError(f"Invalid candidate status: {status}")

    candidate = _get_candidate(db, candidate_id)
    previous = candidate.status

    # only one open candidate per key
    if status in OPEN_CANDIDATE_STATUSES and previous not in OPEN_CANDIDATE_STATUSES:
        conflict = db.query(KnowledgeCandidate.id).filter(
            KnowledgeCandidate.candidate_key == candidate.candidate_key,
            KnowledgeCandidate.status.in_(OPEN_CANDIDATE_STATUSES),
            KnowledgeCandidate.id != candidate.id
        ).first()
        if conflict:
            raise ValidationError(
                f"Candidate {conflict.id} is already open for {candidate.candidate_key}"
            )

    key = candidate.candidate_key
    candidate.status = status
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("knowledge_candidate_key_conflict",
                       candidate_id=candidate_id, candidate_key=key, error=str(e))
        raise ValidationError(f"Another open candidate already exists for {key}") from e
    db.refresh(candidate)

    logger.info("knowledge_candidate_status_changed",
                candidate_id=candidate_id, previous=previous, status=status)
    return candidate


def list_candidates(db: Session, status: Optional[str] = None, limit: int = 100) -> List[KnowledgeCandidate]:
    """Review queue order: highest demand first, newest first among ties."""
    query = db.query(KnowledgeCandidate)
    if status:
        query = query.filter(KnowledgeCandidate.status == status)
    return query.order_by(
        KnowledgeCandidate.demand_score.desc(),
        KnowledgeCandidate.id.desc()
    ).limit(limit).all()


def list_entries(db: Session, status: Optional[str] = None, limit: int = 100) -> List[KnowledgeEntry]:
    query = db.query(KnowledgeEntry)
    if status:
        query = query.filter(KnowledgeEntry.status == status)
    return query.order_by(KnowledgeEntry.id.desc()).limit(limit).all()


__all__ = [
    "select_exemplars",
    "synthesize_entry",
    "review_entry",
    "activate_entry",
    "update_candidate_status",
    "list_candidates",
    "list_entries",
]
