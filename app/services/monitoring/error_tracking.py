"""
Sentry Error Tracking
Provides error tracking with feedback-loop context for production debugging
"""

from typing import Optional

import sentry_sdk
import structlog

logger = structlog.get_logger(__name__)


def init_sentry() -> None:
    """
    Initialize Sentry SDK with FastAPI integration.

    If SENTRY_DSN is not configured, logs warning and returns (disabled).
    sentry_sdk calls elsewhere are no-ops until init, so callers never need
    to check.
    """
    from app.config import settings

    if settings.sentry_dsn is None:
        logger.warning("sentry_disabled", reason="dsn_not_configured")
        return

    from sentry_sdk.integrations.fastapi import FastApiIntegration

    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment or settings.environment,
            traces_sample_rate=0.1,  # 10% of requests traced
            integrations=[
                FastApiIntegration(),
            ],
        )

        logger.info(
            "sentry_initialized",
            environment=settings.sentry_environment or settings.environment,
            traces_sample_rate=0.1,
        )
    except Exception as e:
        logger.error("sentry_init_failed", error=str(e))


def set_pipeline_context(stage: str, **details) -> None:
    """
    Tag the current Sentry scope with the feedback-loop stage being run.

    Args:
        stage: e.g. "accuracy_refresh", "gap_detection", "knowledge_synthesis"
        **details: Extra identifiers (candidate_id, entry_id, ...)
    """
    sentry_sdk.set_context("feedback_loop", {"stage": stage, **details})
    sentry_sdk.set_tag("feedback_stage", stage)


def add_breadcrumb(
    category: str,
    message: str,
    level: str = "info",
    data: Optional[dict] = None
) -> None:
    """
    Add breadcrumb to Sentry for the processing trail.

    Args:
        category: Breadcrumb category (e.g., "aggregation", "gap_detection")
        message: Human-readable message
        level: Severity level ("debug", "info", "warning", "error")
        data: Additional structured data
    """
    sentry_sdk.add_breadcrumb(
        category=category,
        message=message,
        level=level,
        data=data or {}
    )


def capture_message(message: str, level: str = "info") -> None:
    """Capture a non-exception event in Sentry."""
    sentry_sdk.capture_message(message, level=level)
