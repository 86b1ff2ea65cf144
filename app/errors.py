"""
Feedback Loop Errors
Domain exceptions raised by the accuracy-feedback services and mapped to HTTP codes by routers
"""

from typing import Optional


class FeedbackLoopError(Exception):
    """Base class for accuracy-feedback errors."""

    status_code = 500


class ValidationError(FeedbackLoopError):
    """Missing or malformed required input. Never retried."""

    status_code = 400


class NotFoundError(FeedbackLoopError):
    """Referenced correction, candidate or entry does not exist."""

    status_code = 404


class NoExemplarsError(FeedbackLoopError):
    """A synthesis request has no correction exemplars even after fallback."""

    status_code = 422

    def __init__(self, candidate_id: int, agency: str, message: Optional[str] = None):
        self.candidate_id = candidate_id
        self.agency = agency
        if message is None:
            message = (
                f"No approved corrections available for candidate {candidate_id} "
                f"(agency {agency})"
            )
        super().__init__(message)


class UpstreamGenerationError(FeedbackLoopError):
    """The text-generation service failed or returned an unusable payload."""

    status_code = 502

    def __init__(self, message: str, feature: Optional[str] = None):
        self.feature = feature
        super().__init__(message)


class PartialAggregationWarning(UserWarning):
    """
    A single accuracy segment failed to upsert during recompute.

    Not raised: recorded in the recompute result and logged, the batch continues.
    """

    def __init__(self, agency: str, item_type: str, violation_type: Optional[str], error: str):
        self.agency = agency
        self.item_type = item_type
        self.violation_type = violation_type
        self.error = error
        super().__init__(
            f"Failed to upsert accuracy stat {agency}/{item_type}/{violation_type or 'general'}: {error}"
        )

    def to_dict(self) -> dict:
        return {
            "type": "partial_aggregation",
            "agency": self.agency,
            "item_type": self.item_type,
            "violation_type": self.violation_type,
            "error": self.error,
        }


__all__ = [
    "FeedbackLoopError",
    "ValidationError",
    "NotFoundError",
    "NoExemplarsError",
    "UpstreamGenerationError",
    "PartialAggregationWarning",
]
