"""
Pydantic data models for the reliability engine.

Includes:
- Enums (ErrorKind, BackoffKind, EnforcementMode, BudgetLimitKind, AlertEvent, ...)
- Policy (ReliabilityPolicy, BackoffPolicy, CircuitBreakerPolicy, ErrorPattern)
- Attempts (CallAttempt, ModelFailure)
- Budget (TenantBudgetLimits, TenantBudgetCounters, BudgetStatus)
- Result (ExecutionResult)
"""

from reliability_layer.models.attempt import CallAttempt, ModelFailure
from reliability_layer.models.budget import (
    BudgetStatus,
    TenantBudgetCounters,
    TenantBudgetLimits,
)
from reliability_layer.models.enums import (
    AlertEvent,
    AttemptOutcome,
    BackoffKind,
    BreakerStatus,
    BudgetLimitKind,
    EnforcementMode,
    ErrorKind,
    RetryReason,
)
from reliability_layer.models.policy import (
    BackoffPolicy,
    CircuitBreakerPolicy,
    ErrorPattern,
    ReliabilityPolicy,
)
from reliability_layer.models.result import ExecutionResult

__all__ = [
    # Enums
    "AlertEvent",
    "AttemptOutcome",
    "BackoffKind",
    "BreakerStatus",
    "BudgetLimitKind",
    "EnforcementMode",
    "ErrorKind",
    "RetryReason",
    # Policy
    "BackoffPolicy",
    "CircuitBreakerPolicy",
    "ErrorPattern",
    "ReliabilityPolicy",
    # Attempts
    "CallAttempt",
    "ModelFailure",
    # Budget
    "BudgetStatus",
    "TenantBudgetCounters",
    "TenantBudgetLimits",
    # Result
    "ExecutionResult",
]
