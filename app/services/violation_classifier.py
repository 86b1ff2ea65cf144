"""
Violation-Type Classifier
Rule-based inference of coarse violation categories and owning agencies from free text
"""

import re
from typing import Any, Iterable, List, Optional, Tuple

from app.models.enums import ViolationType

UNKNOWN_AGENCY = "UNKNOWN"

# Ordered: first match wins. Descriptions often mention several topics
# ("fire alarm in elevator machine room"), so order decides the bucket.
VIOLATION_TYPE_RULES: Tuple[Tuple[ViolationType, "re.Pattern[str]"], ...] = (
    (ViolationType.elevator, re.compile(r"elevator|lift")),
    (ViolationType.facade, re.compile(r"facade|local law 11|ll11|exterior wall")),
    (ViolationType.sprinkler, re.compile(r"sprinkler|standpipe")),
    (ViolationType.boiler, re.compile(r"boiler")),
    (ViolationType.electrical, re.compile(r"electric|wiring")),
    (ViolationType.plumbing, re.compile(r"plumb")),
    (ViolationType.fire_safety, re.compile(r"fire|smoke|alarm|fdny")),
    (ViolationType.construction, re.compile(r"construction|build|demolition")),
    (ViolationType.zoning, re.compile(r"zoning|certificate of occupancy|c of o")),
    (ViolationType.lead_paint, re.compile(r"lead|paint")),
)


def classify(identifier: Optional[str], free_text: Optional[str]) -> str:
    """
    Infer the violation type of a line item.

    Args:
        identifier: Line item identifier (violation number, application key)
        free_text: Note or description text

    Returns:
        ViolationType value, "general" when no rule matches

    Example:
        >>> classify("ELEV12345", "elevator inspection overdue")
        'elevator'
    """
    combined = f"{identifier or ''} {free_text or ''}".lower()
    for violation_type, pattern in VIOLATION_TYPE_RULES:
        if pattern.search(combined):
            return violation_type.value
    return ViolationType.general.value


def classify_correction(correction: Any) -> str:
    """Classify a correction from its identifier and edited note."""
    return classify(correction.item_identifier, correction.edited_note)


def keyword_for(violation_type: str) -> str:
    """Search keyword for a violation type tag ("fire_safety" -> "fire safety")."""
    return violation_type.replace("_", " ")


def matches_any_type(text: str, violation_types: Iterable[str]) -> bool:
    """True if text mentions the keyword of any given violation type."""
    lowered = text.lower()
    return any(keyword_for(vt) in lowered for vt in violation_types)


def application_key(application: dict) -> str:
    """Composite key used for application line items, e.g. "BIS-121234567"."""
    source = application.get("source") or "BIS"
    app_id = application.get("id") or application.get("application_number")
    return f"{source}-{app_id}"


def infer_agency_from_note(
    note: dict,
    violations: Optional[List[dict]],
    applications: Optional[List[dict]]
) -> str:
    """
    Infer which agency a line-item note belongs to.

    Violations are matched on id or violation_number and report their own
    agency. Applications are matched on the composite source-id key and are
    always DOB filings (BIS and DOB NOW alike). Anything else is UNKNOWN.

    Args:
        note: Line item note dict with an "item_id"
        violations: Report's violations payload
        applications: Report's applications payload

    Returns:
        Agency code or "UNKNOWN"
    """
    item_id = note.get("item_id") or ""

    if isinstance(violations, list):
        for violation in violations:
            if not isinstance(violation, dict):
                continue
            if violation.get("id") == item_id or violation.get("violation_number") == item_id:
                return violation.get("agency") or UNKNOWN_AGENCY

    if isinstance(applications, list):
        for application in applications:
            if isinstance(application, dict) and application_key(application) == item_id:
                return "DOB"

    return UNKNOWN_AGENCY


__all__ = [
    "VIOLATION_TYPE_RULES",
    "UNKNOWN_AGENCY",
    "classify",
    "classify_correction",
    "keyword_for",
    "matches_any_type",
    "application_key",
    "infer_agency_from_note",
]
