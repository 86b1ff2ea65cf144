"""
Monitoring Module
Exports for structured logging, circuit breakers and error tracking
"""

from app.services.monitoring.logging import setup_logging, CorrelationJsonFormatter
from app.services.monitoring.circuit_breakers import (
    get_llm_breaker,
    reset_llm_breaker,
    CircuitBreakerError,
    CircuitBreakerAlertListener,
)
from app.services.monitoring.error_tracking import (
    init_sentry,
    set_pipeline_context,
    add_breadcrumb,
    capture_message,
)

__all__ = [
    "setup_logging",
    "CorrelationJsonFormatter",
    "get_llm_breaker",
    "reset_llm_breaker",
    "CircuitBreakerError",
    "CircuitBreakerAlertListener",
    "init_sentry",
    "set_pipeline_context",
    "add_breadcrumb",
    "capture_message",
]
