"""
Retry, fallback and timeout machinery for one logical model call.

Components (leaf-first):
    - ErrorClassifier: error -> fatal | retryable | fallback_eligible | rate_limited
    - compute_delay: constant/exponential backoff with jitter
    - TotalTimeoutGuard: wall-clock budget across all attempts and models
    - AttemptTracker: append-only audit trail of CallAttempt records
    - RetryExecutor: bounded retries of a single model
    - FallbackOrchestrator: ordered model chain with circuit breaker gate

Usage:
    >>> tracker = AttemptTracker()
    >>> deadline = TotalTimeoutGuard(policy.total_timeout)
    >>> executor = RetryExecutor(policy, ErrorClassifier(policy), tracker, deadline)
    >>> orchestrator = FallbackOrchestrator(executor, tracker, deadline, breaker)
    >>> outcome = await orchestrator.execute(policy.models_for("gpt-4o"), attempt_fn, "SummaryAgent")
"""

from reliability_layer.retry.backoff import compute_delay
from reliability_layer.retry.classifier import ErrorClassifier, classify_error
from reliability_layer.retry.deadline import TotalTimeoutGuard
from reliability_layer.retry.exceptions import (
    AllModelsExhausted,
    BudgetExceeded,
    CircuitOpenError,
    ReliabilityError,
    RetryBudgetExhausted,
    TotalTimeoutExceeded,
)
from reliability_layer.retry.executor import RetryExecutor
from reliability_layer.retry.orchestrator import FallbackOrchestrator, OrchestrationOutcome
from reliability_layer.retry.tracker import AttemptTracker, PendingAttempt

__all__ = [
    "AllModelsExhausted",
    "AttemptTracker",
    "BudgetExceeded",
    "CircuitOpenError",
    "ErrorClassifier",
    "FallbackOrchestrator",
    "OrchestrationOutcome",
    "PendingAttempt",
    "ReliabilityError",
    "RetryBudgetExhausted",
    "RetryExecutor",
    "TotalTimeoutExceeded",
    "TotalTimeoutGuard",
    "classify_error",
    "compute_delay",
]
