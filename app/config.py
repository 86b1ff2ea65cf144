"""
Application Configuration
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    database_url: Optional[str] = None

    # Environment
    environment: str = "development"

    # LLM
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    llm_max_tokens: int = 2048
    llm_timeout_seconds: float = 60.0

    # Circuit Breaker Configuration
    circuit_breaker_fail_max: int = 5  # Consecutive failures before opening circuit
    circuit_breaker_reset_timeout: int = 60  # Seconds before auto-recovery attempt

    # Sentry Error Tracking
    sentry_dsn: Optional[str] = None
    sentry_environment: Optional[str] = None  # Defaults to environment setting

    # Accuracy feedback loop
    gap_window_days: int = 30  # Trailing window for gap detection
    gap_high_edit_rate: float = 0.4  # Segments above this are gap-eligible at any volume
    confidence_flag_edit_rate: float = 0.3  # Segments above this are flagged in prompts
    needs_review_edit_rate: float = 0.5  # Flagged segments above this need human review

    # Scheduled accuracy refresh (hour of day, New York time); disabled when unset
    accuracy_refresh_cron_hour: Optional[int] = None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
