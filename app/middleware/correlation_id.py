"""
Correlation ID Middleware
Request tracing for API calls and scheduled jobs
"""

import uuid
from contextlib import contextmanager

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id

__all__ = ["CorrelationIdMiddleware", "get_correlation_id", "job_correlation_id"]


def get_correlation_id() -> str:
    """
    Get current correlation ID from async context.

    Returns:
        str: The correlation ID or 'none' if not available
    """
    return correlation_id.get() or 'none'


@contextmanager
def job_correlation_id(job_name: str):
    """
    Give a scheduled job its own correlation ID.

    Scheduler threads run outside any request, so log lines from a job
    would otherwise carry 'none'.
    """
    token = correlation_id.set(f"{job_name}-{uuid.uuid4().hex[:12]}")
    try:
        yield correlation_id.get()
    finally:
        correlation_id.reset(token)
