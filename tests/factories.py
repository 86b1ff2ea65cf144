"""
Test data builders and fakes for the language-model dependency
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from app.models import AccuracyStat, Correction, DDReport, KnowledgeCandidate, KnowledgeEntry

NOW = datetime.now(timezone.utc)


class FakeGenerator:
    """Stands in for LLMClient in service and API tests."""

    def __init__(self, content="", error=None):
        self.content = content
        self.error = error
        self.calls = []

    def generate_text(self, system_prompt, user_prompt, feature, **kwargs):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "feature": feature,
            **kwargs,
        })
        if self.error is not None:
            raise self.error
        return self.content


def fake_message(text=None, tool_name=None, tool_input=None, input_tokens=120, output_tokens=480):
    """Anthropic Message look-alike."""
    content = []
    if text is not None:
        content.append(SimpleNamespace(type="text", text=text))
    if tool_name is not None:
        content.append(SimpleNamespace(type="tool_use", name=tool_name, input=tool_input, id="toolu_01"))
    return SimpleNamespace(
        content=content,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


class FakeAnthropic:
    """Exposes messages.create like anthropic.Anthropic; returns or raises queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.messages = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_correction(db, **overrides):
    values = {
        "report_id": "rpt-1",
        "item_type": "violation",
        "item_identifier": "V-100",
        "agency": "DOB",
        "original_note": "Open violation.",
        "edited_note": "Open violation requiring correction.",
        "error_category": "too_vague",
        "status": "approved",
        "created_at": NOW - timedelta(days=1),
    }
    values.update(overrides)
    correction = Correction(**values)
    db.add(correction)
    db.commit()
    db.refresh(correction)
    return correction


def make_corrections(db, count, days_ago=1, **overrides):
    """count corrections, oldest first, one minute apart."""
    rows = []
    for i in range(count):
        fields = dict(overrides)
        fields.setdefault("item_identifier", f"V-{i + 1}")
        fields["created_at"] = NOW - timedelta(days=days_ago, minutes=count - i)
        rows.append(make_correction(db, **fields))
    return rows


def make_stat(db, **overrides):
    values = {
        "agency": "DOB",
        "item_type": "violation",
        "violation_type": None,
        "total_notes_generated": 10,
        "total_edits": 1,
        "denominator_is_estimated": False,
        "edit_rate": 0.1,
        "top_error_category": "too_vague",
        "last_updated": NOW,
    }
    values.update(overrides)
    stat = AccuracyStat(**values)
    db.add(stat)
    db.commit()
    return stat


def make_candidate(db, **overrides):
    values = {
        "title": "HPD Elevator Assessment Guide",
        "knowledge_type": "violation_guide",
        "agency": "HPD",
        "violation_types": ["elevator"],
        "candidate_key": "HPD::elevator",
        "trigger_reason": "3 corrections in 30 days, primarily knowledge gap",
        "source_edit_ids": [],
        "demand_score": 3,
        "priority": "medium",
        "status": "detected",
    }
    values.update(overrides)
    candidate = KnowledgeCandidate(**values)
    db.add(candidate)
    db.commit()
    db.refresh(candidate)
    return candidate


def make_entry(db, **overrides):
    values = {
        "title": "HPD Elevator Assessment Guide",
        "content": "HPD elevator violations concern ...",
        "agency": "HPD",
        "violation_types": ["elevator"],
        "word_count": 5,
        "status": "approved",
        "usage_count": 0,
    }
    values.update(overrides)
    entry = KnowledgeEntry(**values)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def make_report(db, **overrides):
    values = {
        "id": "rpt-1",
        "address": "123 Main St, Brooklyn",
        "violations_data": [],
        "applications_data": [],
        "line_item_notes": [],
    }
    values.update(overrides)
    report = DDReport(**values)
    db.add(report)
    db.commit()
    return report
