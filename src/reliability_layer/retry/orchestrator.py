"""
Fallback Orchestrator: drives the ordered model chain of one logical call.

For each model in [primary, *fallbacks] (deduplicated):
1. Check the Total-Timeout Guard
2. If the model's circuit breaker is open, record a short-circuited attempt
   and move on without calling it
3. Otherwise delegate to the Retry Executor; failures are reported to the
   breaker as they happen
4. On success, close/reset the breaker and return the chosen model

Fatal errors and total-timeout expiry abort the chain immediately. When the
last model gives up, AllModelsExhausted carries one diagnostics entry per
model plus the full attempt trail.

Breaker store failures fail open: the model is tried as if closed.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from reliability_layer.breaker.circuit_breaker import BreakerKey, CircuitBreaker
from reliability_layer.llm.base_client import ModelCallResponse
from reliability_layer.models.enums import AttemptOutcome, ErrorKind
from reliability_layer.monitoring import metrics
from reliability_layer.persistence.counter_store import CounterStoreError
from reliability_layer.retry.deadline import TotalTimeoutGuard
from reliability_layer.retry.exceptions import (
    AllModelsExhausted,
    CircuitOpenError,
    RetryBudgetExhausted,
)
from reliability_layer.retry.executor import AttemptFn, FailureCallback, RetryExecutor
from reliability_layer.retry.tracker import AttemptTracker

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrchestrationOutcome:
    """Successful orchestration: the response plus how it was obtained."""

    response: ModelCallResponse
    chosen_model_id: str
    requested_model_id: str
    fallback_reason: Optional[ErrorKind]

    @property
    def fallback_triggered(self) -> bool:
        return self.chosen_model_id != self.requested_model_id


class FallbackOrchestrator:
    """
    Tries models in order until one succeeds.

    Attributes:
        executor: Retry Executor for single-model attempts
        tracker: Attempt audit trail (shared with the executor)
        deadline: Total-timeout guard (shared with the executor)
        breaker: Circuit breaker, or None when breaking is disabled
    """

    def __init__(
        self,
        executor: RetryExecutor,
        tracker: AttemptTracker,
        deadline: TotalTimeoutGuard,
        breaker: Optional[CircuitBreaker] = None,
        metrics_enabled: bool = True,
    ):
        self.executor = executor
        self.tracker = tracker
        self.deadline = deadline
        self.breaker = breaker
        self._metrics_enabled = metrics_enabled

    async def execute(
        self,
        models: list[str],
        attempt_fn: AttemptFn,
        agent_type: str,
        tenant_id: Optional[str] = None,
    ) -> OrchestrationOutcome:
        """
        Run the chain.

        Args:
            models: [primary, *fallbacks], already deduplicated
            attempt_fn: Coroutine function (model_id, attempt_index) -> response
            agent_type: Caller identity used in breaker keys
            tenant_id: Tenant used in breaker keys

        Raises:
            AllModelsExhausted: Every model failed or was skipped
            TotalTimeoutExceeded: Wall-clock budget ran out
            BaseException: Original fatal error
        """
        if not models:
            raise ValueError("models must contain at least the primary model")

        fallback_reason: Optional[ErrorKind] = None
        last_error: Optional[BaseException] = None
        last_kind: Optional[ErrorKind] = None

        for position, model_id in enumerate(models):
            self.deadline.enforce(model_id)
            key = BreakerKey(agent_type=agent_type, model_id=model_id, tenant_id=tenant_id)
            has_fallbacks = position < len(models) - 1

            if await self._breaker_open(key):
                error = CircuitOpenError(
                    model_id=model_id,
                    agent_type=agent_type,
                    tenant_id=tenant_id,
                    retry_after=await self._time_until_close(key),
                )
                self.tracker.record_short_circuit(model_id, error)
                logger.warning(
                    "Model skipped, circuit breaker open",
                    model_id=model_id,
                    agent_type=agent_type,
                    tenant_id=tenant_id,
                    retry_after=error.retry_after,
                )
                if self._metrics_enabled:
                    metrics.short_circuits_total.labels(model=model_id).inc()
                    metrics.model_attempts_total.labels(
                        model=model_id, outcome=AttemptOutcome.SHORT_CIRCUITED.value
                    ).inc()
                last_error, last_kind = error, ErrorKind.FALLBACK_ELIGIBLE
                fallback_reason = fallback_reason or ErrorKind.FALLBACK_ELIGIBLE
                self._log_advance(model_id, models, position, ErrorKind.FALLBACK_ELIGIBLE)
                continue

            try:
                response = await self.executor.execute(
                    model_id,
                    attempt_fn,
                    has_fallbacks=has_fallbacks,
                    on_failure=self._failure_reporter(key) if self.breaker is not None else None,
                )
            except RetryBudgetExhausted as e:
                last_error, last_kind = e.last_error, e.error_kind
                fallback_reason = fallback_reason or e.error_kind
                self._log_advance(model_id, models, position, e.error_kind)
                continue

            await self._record_success(key)
            if position > 0:
                logger.info(
                    "Fallback model succeeded",
                    requested_model_id=models[0],
                    chosen_model_id=model_id,
                    fallback_reason=fallback_reason.value if fallback_reason else None,
                )
            return OrchestrationOutcome(
                response=response,
                chosen_model_id=model_id,
                requested_model_id=models[0],
                fallback_reason=fallback_reason,
            )

        logger.error(
            "All models exhausted",
            models=models,
            attempts_count=self.tracker.attempts_count,
            last_error_type=type(last_error).__name__ if last_error else None,
            last_error_kind=last_kind.value if last_kind else None,
        )
        raise AllModelsExhausted(
            models_tried=self.tracker.models_tried(),
            fallback_chain=self.tracker.fallback_chain(),
            diagnostics=self.tracker.failures_by_model(),
            attempts=self.tracker.attempts,
            last_error=last_error,
            last_error_kind=last_kind,
            tenant_id=tenant_id,
        ) from last_error

    def _log_advance(self, model_id: str, models: list[str], position: int, kind: ErrorKind) -> None:
        if position >= len(models) - 1:
            return
        logger.info(
            "Falling back to next model",
            from_model=model_id,
            to_model=models[position + 1],
            reason=kind.value,
        )
        if self._metrics_enabled:
            metrics.fallbacks_total.labels(reason=kind.value).inc()

    # ------------------------------------------------------------------
    # Breaker access (fail open on store errors)
    # ------------------------------------------------------------------

    async def _breaker_open(self, key: BreakerKey) -> bool:
        if self.breaker is None:
            return False
        try:
            return await self.breaker.is_open(key)
        except CounterStoreError as e:
            self._store_failed("breaker_check", key, e)
            return False

    async def _time_until_close(self, key: BreakerKey) -> Optional[float]:
        if self.breaker is None:
            return None
        try:
            return await self.breaker.time_until_close(key)
        except CounterStoreError as e:
            self._store_failed("breaker_check", key, e)
            return None

    def _failure_reporter(self, key: BreakerKey) -> FailureCallback:
        async def report(model_id: str, error: BaseException, kind: ErrorKind) -> bool:
            return await self._record_failure(key)

        return report

    async def _record_failure(self, key: BreakerKey) -> bool:
        if self.breaker is None:
            return False
        try:
            return await self.breaker.record_failure(key)
        except CounterStoreError as e:
            self._store_failed("breaker_record", key, e)
            return False

    async def _record_success(self, key: BreakerKey) -> None:
        if self.breaker is None:
            return
        try:
            await self.breaker.record_success(key)
        except CounterStoreError as e:
            self._store_failed("breaker_record", key, e)

    def _store_failed(self, operation: str, key: BreakerKey, error: CounterStoreError) -> None:
        logger.error(
            "Circuit breaker store unavailable, failing open",
            operation=operation,
            agent_type=key.agent_type,
            model_id=key.model_id,
            tenant_id=key.tenant_id,
            error=error.message,
        )
        if self._metrics_enabled:
            metrics.counter_store_errors_total.labels(operation=operation).inc()
