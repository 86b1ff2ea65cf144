"""
Circuit Breaker for the Text-Generation Dependency

Opens after consecutive failures of the language-model API and automatically
attempts recovery after a timeout period, so a failing upstream does not
stall every synthesis request behind network timeouts.
"""

from typing import Optional

import pybreaker
import structlog

from app.config import settings
from app.services.monitoring.error_tracking import capture_message

logger = structlog.get_logger(__name__)


class CircuitBreakerAlertListener(pybreaker.CircuitBreakerListener):
    """
    Reports circuit breaker state changes.

    Every transition is logged; an opening circuit is also sent to Sentry
    so the upstream outage is visible outside the logs.
    """

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: pybreaker.CircuitBreakerState, new_state: pybreaker.CircuitBreakerState):
        logger.warning(
            "circuit_breaker_state_change",
            circuit_breaker=cb.name,
            old_state=old_state.name if old_state else None,
            new_state=new_state.name,
            fail_count=cb.fail_counter
        )

        if new_state.name == pybreaker.STATE_OPEN:
            capture_message(
                f"Circuit breaker opened: {cb.name} after {cb.fail_counter} consecutive failures",
                level="error"
            )


def _create_breaker(name: str) -> pybreaker.CircuitBreaker:
    """
    Create a circuit breaker with configured thresholds.

    Args:
        name: Service name for the circuit breaker

    Returns:
        Configured CircuitBreaker instance
    """
    return pybreaker.CircuitBreaker(
        name=name,
        fail_max=settings.circuit_breaker_fail_max,
        reset_timeout=settings.circuit_breaker_reset_timeout,
        listeners=[CircuitBreakerAlertListener()]
    )


# Module-level instance (lazy initialization)
_llm_breaker: Optional[pybreaker.CircuitBreaker] = None


def get_llm_breaker() -> pybreaker.CircuitBreaker:
    """
    Get circuit breaker for the language-model API.

    Lazy initializes on first access to avoid import-time side effects.
    """
    global _llm_breaker

    if _llm_breaker is None:
        _llm_breaker = _create_breaker("llm_api")
        logger.info("circuit_breaker_initialized", circuit_breaker="llm_api")
    return _llm_breaker


def reset_llm_breaker() -> None:
    """Drop the cached breaker (tests, settings reload)."""
    global _llm_breaker
    _llm_breaker = None


# Re-export exception for caller handling
from pybreaker import CircuitBreakerError

__all__ = [
    "CircuitBreakerAlertListener",
    "get_llm_breaker",
    "reset_llm_breaker",
    "CircuitBreakerError",
]
