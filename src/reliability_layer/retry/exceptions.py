"""
Reliability engine exceptions.

User-visible failure of a logical call is always one of:
- BudgetExceeded: rejected by the hard budget pre-check, no model called
- TotalTimeoutExceeded: the wall-clock budget ran out between/during attempts
- AllModelsExhausted: every model in the chain failed (diagnostics attached)
- the original fatal error, re-raised unmodified

RetryBudgetExhausted and CircuitOpenError are internal signals between the
Retry Executor, the Circuit Breaker and the Fallback Orchestrator.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Union

from reliability_layer.models.enums import BudgetLimitKind, ErrorKind

if TYPE_CHECKING:
    from reliability_layer.models.attempt import CallAttempt, ModelFailure


class ReliabilityError(Exception):
    """
    Base exception for all errors raised by the engine itself.

    Attributes:
        message: Human-readable error message
        attempts: Attempt audit trail collected up to the failure
    """

    def __init__(self, message: str, attempts: Optional[list["CallAttempt"]] = None):
        super().__init__(message)
        self.message = message
        self.attempts: list["CallAttempt"] = list(attempts or [])

    @property
    def attempts_count(self) -> int:
        return len(self.attempts)

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for logs and error responses."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "attempts_count": self.attempts_count,
        }


class CircuitOpenError(ReliabilityError):
    """
    Synthetic error recorded when the breaker gate skips a model.

    Always classified fallback-eligible: the orchestrator moves on to the
    next model without calling this one.
    """

    def __init__(
        self,
        model_id: str,
        agent_type: str,
        tenant_id: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.model_id = model_id
        self.agent_type = agent_type
        self.tenant_id = tenant_id
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker open for {agent_type}/{model_id}"
            + (f" (tenant {tenant_id})" if tenant_id else "")
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "model_id": self.model_id,
            "agent_type": self.agent_type,
            "tenant_id": self.tenant_id,
            "retry_after": self.retry_after,
        }


class TotalTimeoutExceeded(ReliabilityError):
    """
    Raised when the wall-clock budget spanning all attempts runs out.

    Always fatal once raised: no further attempt or fallback is made.
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float,
        model_id: Optional[str] = None,
        attempts: Optional[list["CallAttempt"]] = None,
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.model_id = model_id
        super().__init__(
            f"Total timeout of {timeout:.3f}s exceeded after {elapsed:.3f}s"
            + (f" while on model {model_id}" if model_id else ""),
            attempts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "timeout": self.timeout,
            "elapsed": round(self.elapsed, 3),
            "model_id": self.model_id,
        }


class BudgetExceeded(ReliabilityError):
    """
    Raised by the hard budget pre-check before any model is called.

    Attributes:
        tenant_id: Tenant whose limit was reached
        limit_kind: Which limit was breached (first in check order)
        limit: Configured threshold
        current: Counter value at check time (>= limit)
    """

    def __init__(
        self,
        tenant_id: str,
        limit_kind: BudgetLimitKind,
        limit: Union[Decimal, int],
        current: Union[Decimal, int],
    ):
        self.tenant_id = tenant_id
        self.limit_kind = limit_kind
        self.limit = limit
        self.current = current
        super().__init__(
            f"Budget exceeded for tenant {tenant_id}: "
            f"{limit_kind.value} {current} >= limit {limit}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "tenant_id": self.tenant_id,
            "limit_kind": self.limit_kind.value,
            "limit": str(self.limit),
            "current": str(self.current),
        }


class RetryBudgetExhausted(ReliabilityError):
    """
    Internal signal from the Retry Executor: stop using this model.

    Carries the last error and its classification so the orchestrator can
    decide whether to advance and what to report as fallback reason.
    """

    def __init__(
        self,
        model_id: str,
        last_error: BaseException,
        error_kind: ErrorKind,
        attempts_made: int,
    ):
        self.model_id = model_id
        self.last_error = last_error
        self.error_kind = error_kind
        self.attempts_made = attempts_made
        super().__init__(
            f"Model {model_id} gave up after {attempts_made} attempt(s): "
            f"{type(last_error).__name__} ({error_kind.value})"
        )


class AllModelsExhausted(ReliabilityError):
    """
    Terminal error: every model in the chain was tried (or skipped) and failed.

    Attributes:
        models_tried: Every model in chain order, skipped ones included
        fallback_chain: Models actually called
        diagnostics: One ModelFailure per model, in chain order
        last_error: Last error raised by a model (or the synthetic breaker error)
        retryable: Terminal error was classified retryable
        rate_limited: Terminal error was classified rate-limited
        tenant_id: Tenant of the call, if any
    """

    def __init__(
        self,
        models_tried: list[str],
        fallback_chain: list[str],
        diagnostics: list["ModelFailure"],
        attempts: list["CallAttempt"],
        last_error: Optional[BaseException] = None,
        last_error_kind: Optional[ErrorKind] = None,
        tenant_id: Optional[str] = None,
    ):
        self.models_tried = models_tried
        self.fallback_chain = fallback_chain
        self.diagnostics = diagnostics
        self.last_error = last_error
        self.last_error_kind = last_error_kind
        self.retryable = last_error_kind is ErrorKind.RETRYABLE
        self.rate_limited = last_error_kind is ErrorKind.RATE_LIMITED
        self.tenant_id = tenant_id
        super().__init__(
            f"All {len(models_tried)} model(s) exhausted: {', '.join(models_tried)}"
            + (f". Last error: {type(last_error).__name__}: {last_error}" if last_error else ""),
            attempts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "models_tried": self.models_tried,
            "fallback_chain": self.fallback_chain,
            "retryable": self.retryable,
            "rate_limited": self.rate_limited,
            "tenant_id": self.tenant_id,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
