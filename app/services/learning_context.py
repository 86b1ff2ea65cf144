"""
Prompt Context Builder
Assembles few-shot correction examples, reference entries and confidence flags
for the next report-generation request
"""

from collections import OrderedDict
from typing import Dict, List, Optional

from jinja2 import Environment, StrictUndefined
from sqlalchemy.orm import Session
import structlog

from app.config import settings
from app.models.accuracy_stat import AccuracyStat
from app.models.correction import Correction
from app.models.enums import CorrectionStatus, ErrorCategory, INJECTABLE_ENTRY_STATUSES, ViolationType
from app.models.knowledge import KnowledgeEntry

logger = structlog.get_logger(__name__)

MAX_RECENT_CORRECTIONS = 200
MIN_CATEGORY_SIZE = 3
EXAMPLES_PER_CATEGORY = 3
MAX_EXAMPLES = 15
EXAMPLE_NOTE_CHARS = 200

# Categories whose segments exceed this edit rate are shown first
HIGH_EDIT_RATE_CATEGORY = 0.2

MAX_CANDIDATE_ENTRIES = 20
MAX_RELEVANT_ENTRIES = 5
MAX_FALLBACK_ENTRIES = 3

CATEGORY_DESCRIPTIONS = {
    ErrorCategory.too_vague.value: "AI wrote generic language without specifics",
    ErrorCategory.wrong_severity.value: "AI misclassified severity or action level",
    ErrorCategory.missing_context.value: "AI didn't connect item to customer's stated concern",
    ErrorCategory.stale_treated_as_active.value: "AI wrote about already resolved/closed items as if active",
    ErrorCategory.wrong_agency_explanation.value: "AI misunderstood what an agency's violation/penalty means",
    ErrorCategory.missing_note.value: "AI generated no note where one was needed",
    ErrorCategory.factual_error.value: "AI stated something incorrect about the violation or regulation",
    ErrorCategory.tone_style.value: "Note was technically correct but wording was unprofessional or alarmist",
    ErrorCategory.knowledge_gap.value: "AI clearly lacked domain knowledge about this violation type or regulation",
    ErrorCategory.other.value: "Other correction type",
}

PROMPT_SECTION_TEMPLATE = """{% if few_shot_examples %}
LEARN FROM PAST CORRECTIONS:
{% for block in few_shot_examples %}
{{ block }}
{% endfor %}
{% endif %}
{% if knowledge_context %}
REFERENCE KNOWLEDGE:
{% for ref in knowledge_context %}
{{ ref }}

{% endfor %}
{% endif %}
{% if confidence_flags %}
LOW-CONFIDENCE AREAS (be especially precise):
{% for flag in confidence_flags %}
- {{ flag.agency }} {{ flag.violation_type }}: {{ flag.edit_rate_percent }}% edited, mostly {{ flag.top_error }}{% if flag.needs_review %} (needs review){% endif %}

{% endfor %}
{% endif %}"""

_env = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True, undefined=StrictUndefined)


def pick_diverse(corrections: List[Correction], limit: int) -> List[Correction]:
    """
    Up to `limit` corrections, one per distinct agency first, then repeats
    in original order.
    """
    picked: List[Correction] = []
    seen_agencies = set()
    for correction in corrections:
        if len(picked) >= limit:
            break
        if correction.agency not in seen_agencies:
            picked.append(correction)
            seen_agencies.add(correction.agency)

    if len(picked) < limit:
        for correction in corrections:
            if len(picked) >= limit:
                break
            if correction not in picked:
                picked.append(correction)

    # keep recency order within the block
    order = {id(c): i for i, c in enumerate(corrections)}
    return sorted(picked, key=lambda c: order[id(c)])


def format_example(index: int, correction: Correction) -> str:
    original = (correction.original_note or "(no note)")[:EXAMPLE_NOTE_CHARS]
    edited = (correction.edited_note or "")[:EXAMPLE_NOTE_CHARS]
    return (
        f'  Example {index}: Original: "{original}" → Corrected: "{edited}" '
        f"(Agency: {correction.agency}, Type: {correction.item_type})\n"
    )


def build_few_shot_examples(corrections: List[Correction], high_rate_categories) -> tuple:
    """
    Returns:
        (list of rendered category blocks, number of examples rendered)
    """
    by_category: Dict[str, List[Correction]] = OrderedDict()
    for correction in corrections:
        by_category.setdefault(correction.error_category, []).append(correction)

    eligible = [(cat, items) for cat, items in by_category.items() if len(items) >= MIN_CATEGORY_SIZE]
    # stable sort: ties keep first-seen (most recent) order
    eligible.sort(key=lambda pair: (pair[0] not in high_rate_categories, -len(pair[1])))

    blocks: List[str] = []
    total = 0
    for category, items in eligible:
        if total >= MAX_EXAMPLES:
            break
        block = f"ERROR PATTERN: {CATEGORY_DESCRIPTIONS.get(category, category)}\n"
        for i, correction in enumerate(pick_diverse(items, EXAMPLES_PER_CATEGORY), start=1):
            if total >= MAX_EXAMPLES:
                break
            block += format_example(i, correction)
            total += 1
        blocks.append(block)

    return blocks, total


def select_entries(
    entries: List[KnowledgeEntry],
    agencies: List[str],
    violation_types: List[str]
) -> List[KnowledgeEntry]:
    if not entries:
        return []
    if not agencies:
        return entries[:MAX_RELEVANT_ENTRIES]

    wanted_types = set(violation_types)
    relevant = [
        e for e in entries
        if e.agency in agencies or wanted_types.intersection(e.violation_types or [])
    ]
    if relevant:
        return relevant[:MAX_RELEVANT_ENTRIES]
    return entries[:MAX_FALLBACK_ENTRIES]


def _increment_usage(db: Session, entries: List[KnowledgeEntry]) -> None:
    """Best-effort usage bump; failures are logged, never raised."""
    if not entries:
        return
    try:
        db.query(KnowledgeEntry).filter(
            KnowledgeEntry.id.in_([e.id for e in entries])
        ).update(
            {KnowledgeEntry.usage_count: KnowledgeEntry.usage_count + 1},
            synchronize_session=False
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning("knowledge_usage_increment_failed",
                       entry_ids=[entry.id for entry in entries], error=str(e))


def build_confidence_flags(stats: List[AccuracyStat]) -> List[dict]:
    flags = []
    for stat in stats:
        if stat.edit_rate is None or stat.edit_rate <= settings.confidence_flag_edit_rate:
            continue
        flags.append({
            "agency": stat.agency,
            "violation_type": stat.violation_type or ViolationType.general.value,
            "edit_rate_percent": int(round(stat.edit_rate * 100)),
            "top_error": stat.top_error_category or "unknown",
            "needs_review": stat.edit_rate > settings.needs_review_edit_rate,
        })
    return flags


def build_learning_context(
    db: Session,
    agencies: Optional[List[str]] = None,
    violation_types: Optional[List[str]] = None
) -> dict:
    """
    Build the learning context injected into report generation.

    Read-mostly: the only write is the usage-count bump on selected entries.

    Args:
        db: Database session
        agencies: Agencies present in the report being generated
        violation_types: Violation types present in the report

    Returns:
        {"few_shot_examples", "knowledge_context", "confidence_flags", "meta"}
    """
    agencies = [a.upper() for a in (agencies or [])]
    violation_types = list(violation_types or [])

    corrections = db.query(Correction).filter(
        Correction.status == CorrectionStatus.approved.value,
        Correction.classification_only.is_(False),
    ).order_by(Correction.created_at.desc(), Correction.id.desc()).limit(MAX_RECENT_CORRECTIONS).all()

    stats = db.query(AccuracyStat).order_by(AccuracyStat.edit_rate.desc()).all()
    high_rate_categories = {
        s.top_error_category for s in stats
        if s.top_error_category and (s.edit_rate or 0) > HIGH_EDIT_RATE_CATEGORY
    }

    few_shot_examples, examples_count = build_few_shot_examples(corrections, high_rate_categories)

    entries = db.query(KnowledgeEntry).filter(
        KnowledgeEntry.status.in_(INJECTABLE_ENTRY_STATUSES)
    ).order_by(KnowledgeEntry.usage_count.desc(), KnowledgeEntry.id.asc()).limit(MAX_CANDIDATE_ENTRIES).all()

    selected = select_entries(entries, agencies, violation_types)
    knowledge_context = [f"REFERENCE: {e.title}\n{e.content}" for e in selected]
    _increment_usage(db, selected)

    confidence_flags = build_confidence_flags(stats)

    meta = {
        "total_approved_edits": len(corrections),
        "categories_with_examples": len(few_shot_examples),
        "examples_count": examples_count,
        "knowledge_entries_used": len(selected),
        "flags_count": len(confidence_flags),
    }

    logger.info("learning_context_built", agencies=agencies, **meta)

    return {
        "few_shot_examples": few_shot_examples,
        "knowledge_context": knowledge_context,
        "confidence_flags": confidence_flags,
        "meta": meta,
    }


def render_prompt_section(context: dict) -> str:
    """Render a learning context as one block for a generation prompt."""
    return _env.from_string(PROMPT_SECTION_TEMPLATE).render(
        few_shot_examples=context.get("few_shot_examples", []),
        knowledge_context=context.get("knowledge_context", []),
        confidence_flags=context.get("confidence_flags", []),
    ).strip()


__all__ = [
    "CATEGORY_DESCRIPTIONS",
    "build_few_shot_examples",
    "select_entries",
    "build_confidence_flags",
    "build_learning_context",
    "render_prompt_section",
]
