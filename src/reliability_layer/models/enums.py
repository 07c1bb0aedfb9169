"""
Enumerations for the reliability engine data models.

All enums are closed taxonomies - no values outside these sets are permitted.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """
    Classification of an error raised while calling a model.

    - FATAL: caller programming error; never retried, never falls back
    - RETRYABLE: transient; retried on the same model up to max_retries
    - FALLBACK_ELIGIBLE: advance to the next model without retrying
    - RATE_LIMITED: fallback-eligible; same-model retry only when no
      further models remain
    """

    FATAL = "fatal"
    RETRYABLE = "retryable"
    FALLBACK_ELIGIBLE = "fallback_eligible"
    RATE_LIMITED = "rate_limited"


class BackoffKind(str, Enum):
    """Delay curve between same-model attempts."""

    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class EnforcementMode(str, Enum):
    """
    How a tenant budget limit is acted on.

    - NONE: no checks
    - SOFT: never blocks, alerts once a limit is reached after recording
    - HARD: blocks the call before any model is invoked
    """

    NONE = "none"
    SOFT = "soft"
    HARD = "hard"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SHORT_CIRCUITED = "short_circuited"


class RetryReason(str, Enum):
    """Why a failed attempt was followed by another attempt on the same model."""

    RETRYABLE_ERROR = "retryable_error"
    RATE_LIMITED = "rate_limited"


class BreakerStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class BudgetLimitKind(str, Enum):
    """
    Budget dimensions, in the order the pre-check evaluates them.
    """

    DAILY_COST = "daily_cost"
    MONTHLY_COST = "monthly_cost"
    DAILY_TOKENS = "daily_tokens"
    MONTHLY_TOKENS = "monthly_tokens"
    DAILY_EXECUTIONS = "daily_executions"
    MONTHLY_EXECUTIONS = "monthly_executions"

    @property
    def is_daily(self) -> bool:
        return self.value.startswith("daily_")

    @property
    def dimension(self) -> str:
        """cost | tokens | executions"""
        return self.value.split("_", 1)[1]


class AlertEvent(str, Enum):
    BUDGET_SOFT_CAP = "budget_soft_cap"
    BUDGET_HARD_CAP = "budget_hard_cap"
    TOKEN_SOFT_CAP = "token_soft_cap"
    TOKEN_HARD_CAP = "token_hard_cap"
    BREAKER_OPEN = "breaker_open"
    BREAKER_CLOSED = "breaker_closed"
