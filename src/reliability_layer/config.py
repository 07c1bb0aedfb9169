"""
Configuration settings for the LLM Reliability Layer.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development. Settings only provide the *defaults*
for ReliabilityPolicy and TenantBudgetLimits; callers may always pass
explicit values per call.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "LLM Reliability Layer"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # === Redis (counter store) ===
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50  # Connection pool size
    REDIS_KEY_PREFIX: str = "reliability"

    # === Retry & Fallback (default ReliabilityPolicy) ===
    MAX_RETRIES: int = 0
    BACKOFF_STRATEGY: str = "exponential"  # constant | exponential
    BACKOFF_BASE: float = 0.4  # seconds
    BACKOFF_MAX_DELAY: float = 3.0  # seconds
    FALLBACK_MODELS: list[str] = []  # e.g., ["gpt-4o-mini", "claude-3-haiku"]
    TOTAL_TIMEOUT: Optional[float] = None  # seconds, spans all attempts
    RETRYABLE_PATTERNS: list[str] = []  # extra regexes matched against error messages

    # === Circuit Breaker ===
    CIRCUIT_BREAKER_ENABLED: bool = False
    CIRCUIT_BREAKER_ERRORS: int = 10  # failures within window before opening
    CIRCUIT_BREAKER_WINDOW: float = 60.0  # seconds
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0  # seconds

    # === Budgets (global defaults, inherited by tenants) ===
    BUDGET_ENFORCEMENT: str = "none"  # none | soft | hard
    BUDGET_DAILY_COST_LIMIT: Optional[Decimal] = None
    BUDGET_MONTHLY_COST_LIMIT: Optional[Decimal] = None
    BUDGET_DAILY_TOKEN_LIMIT: Optional[int] = None
    BUDGET_MONTHLY_TOKEN_LIMIT: Optional[int] = None
    BUDGET_DAILY_EXECUTION_LIMIT: Optional[int] = None
    BUDGET_MONTHLY_EXECUTION_LIMIT: Optional[int] = None

    # === Alerts ===
    ALERTS_ENABLED: bool = True

    # === Audit trail ===
    ERROR_MESSAGE_MAX_LENGTH: int = 1000  # chars kept per attempt error message
    BACKTRACE_LINES: int = 5  # traceback lines kept per failed attempt

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True


# Global settings instance
settings = Settings()
