"""
Reliability engine: the single entry point for one logical model call.

Control flow:
    caller -> BudgetTracker.check_budget (hard mode only)
           -> TotalTimeoutGuard started
           -> FallbackOrchestrator
                [breaker gate -> RetryExecutor -> BaseModelClient.invoke] per model
           -> BudgetTracker.record_execution
           -> ExecutionResult (or BudgetExceeded / TotalTimeoutExceeded /
              AllModelsExhausted / the original fatal error)

Usage:
    engine = ReliabilityEngine(client, RedisCounterStore.from_settings(settings), settings)
    result = await engine.execute(
        agent_type="SummaryAgent",
        model_id="gpt-4o",
        payload={"messages": [...]},
        tenant_id="acme",
    )
"""

import random
import time
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog

from reliability_layer.breaker.circuit_breaker import CircuitBreaker
from reliability_layer.budget.tracker import BudgetTracker, utc_today
from reliability_layer.config import Settings
from reliability_layer.llm.base_client import BaseModelClient, ModelCallResponse
from reliability_layer.logging_config import bind_call_context, clear_call_context
from reliability_layer.models.budget import TenantBudgetLimits
from reliability_layer.models.policy import ReliabilityPolicy
from reliability_layer.models.result import ExecutionResult
from reliability_layer.monitoring import metrics
from reliability_layer.monitoring.alerts import AlertManager
from reliability_layer.persistence.counter_store import CounterStore, CounterStoreError
from reliability_layer.retry.classifier import ErrorClassifier
from reliability_layer.retry.deadline import TotalTimeoutGuard
from reliability_layer.retry.exceptions import (
    AllModelsExhausted,
    BudgetExceeded,
    TotalTimeoutExceeded,
)
from reliability_layer.retry.executor import RetryExecutor
from reliability_layer.retry.orchestrator import FallbackOrchestrator
from reliability_layer.retry.tracker import AttemptTracker

logger = structlog.get_logger(__name__)

_CONTEXT_KEYS = ("agent_type", "tenant_id", "requested_model_id")


class ReliabilityEngine:
    """
    Wraps model calls with retries, fallback, circuit breaking and budgets.

    The engine holds no per-call state: every execute() builds its own
    tracker, deadline, executor and orchestrator. Cross-call state (breakers,
    tenant counters) lives in the counter store.

    Attributes:
        client: Model-call collaborator
        store: Shared counter store for breakers and budgets
        settings: Application settings
        policy: Default policy used when execute() gets none
        alert_manager: Alert dispatcher shared by breaker and budget
        budget: Budget tracker over the same store
    """

    def __init__(
        self,
        client: BaseModelClient,
        store: CounterStore,
        settings: Settings,
        alert_manager: Optional[AlertManager] = None,
        policy: Optional[ReliabilityPolicy] = None,
        budget_defaults: Optional[TenantBudgetLimits] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        today: Callable[[], date] = utc_today,
        rng: Callable[[], float] = random.random,
    ):
        self.client = client
        self.store = store
        self.settings = settings
        self.policy = policy or ReliabilityPolicy.from_settings(settings)
        self.alert_manager = alert_manager or AlertManager(
            enabled=settings.ALERTS_ENABLED,
            metrics_enabled=settings.PROMETHEUS_ENABLED,
        )
        self.budget = BudgetTracker(
            store,
            defaults=budget_defaults or TenantBudgetLimits.from_settings(settings),
            alert_manager=self.alert_manager,
            today=today,
            key_prefix=settings.REDIS_KEY_PREFIX,
            metrics_enabled=settings.PROMETHEUS_ENABLED,
        )
        self._clock = clock
        self._wall_clock = wall_clock
        self._rng = rng
        self._metrics_enabled = settings.PROMETHEUS_ENABLED

        logger.info(
            "ReliabilityEngine initialized",
            max_retries=self.policy.max_retries,
            backoff=self.policy.backoff.kind.value,
            fallback_models=list(self.policy.fallback_models),
            total_timeout=self.policy.total_timeout,
            circuit_breaker_enabled=self.policy.circuit_breaker is not None,
            budget_enforcement=self.budget.defaults.effective_enforcement.value
            if self.budget.defaults
            else None,
        )

    def breaker_for(self, policy: ReliabilityPolicy) -> Optional[CircuitBreaker]:
        """Circuit breaker for `policy`, or None when breaking is disabled."""
        if policy.circuit_breaker is None:
            return None
        return CircuitBreaker(
            self.store,
            policy.circuit_breaker,
            alert_manager=self.alert_manager,
            clock=self._wall_clock,
            key_prefix=self.settings.REDIS_KEY_PREFIX,
            metrics_enabled=self._metrics_enabled,
        )

    async def execute(
        self,
        *,
        agent_type: str,
        model_id: str,
        payload: Any,
        policy: Optional[ReliabilityPolicy] = None,
        tenant_id: Optional[str] = None,
        budget_limits: Optional[TenantBudgetLimits] = None,
    ) -> ExecutionResult:
        """
        Run one logical model call.

        Args:
            agent_type: Caller identity (breaker key component)
            model_id: Primary model
            payload: Opaque request forwarded to the client
            policy: Per-call policy (defaults to the engine policy)
            tenant_id: Tenant for budgets and breaker scoping
            budget_limits: Tenant limits (unset values inherit global defaults)

        Returns:
            ExecutionResult with the response value and the attempt trail

        Raises:
            BudgetExceeded: Hard budget pre-check rejected the call
            TotalTimeoutExceeded: Wall-clock budget ran out
            AllModelsExhausted: Every model failed or was skipped
            Exception: The original error, when classified fatal
        """
        bind_call_context(agent_type=agent_type, tenant_id=tenant_id, requested_model_id=model_id)
        try:
            return await self._execute(
                agent_type, model_id, payload, policy or self.policy, tenant_id, budget_limits
            )
        finally:
            clear_call_context(*_CONTEXT_KEYS)

    async def _execute(
        self,
        agent_type: str,
        model_id: str,
        payload: Any,
        policy: ReliabilityPolicy,
        tenant_id: Optional[str],
        budget_limits: Optional[TenantBudgetLimits],
    ) -> ExecutionResult:
        started = self._clock()

        if tenant_id is not None:
            try:
                await self.budget.check_budget(tenant_id, budget_limits)
            except BudgetExceeded:
                self._observe_latency(started, "budget_exceeded")
                raise
            except CounterStoreError as e:
                self._store_failed("budget_check", tenant_id, e)

        tracker = AttemptTracker(
            error_message_max_length=self.settings.ERROR_MESSAGE_MAX_LENGTH,
            backtrace_lines=self.settings.BACKTRACE_LINES,
            clock=self._clock,
        )
        deadline = TotalTimeoutGuard(policy.total_timeout, clock=self._clock)
        executor = RetryExecutor(
            policy,
            ErrorClassifier(policy),
            tracker,
            deadline,
            rng=self._rng,
            metrics_enabled=self._metrics_enabled,
        )
        orchestrator = FallbackOrchestrator(
            executor,
            tracker,
            deadline,
            breaker=self.breaker_for(policy),
            metrics_enabled=self._metrics_enabled,
        )

        async def attempt(target_model: str, attempt_index: int) -> ModelCallResponse:
            return await self.client.invoke(target_model, payload)

        models = policy.models_for(model_id)
        logger.info("Model call starting", models=models, max_attempts_per_model=policy.max_attempts)

        try:
            outcome = await orchestrator.execute(models, attempt, agent_type, tenant_id)
        except AllModelsExhausted:
            await self._record(tenant_id, budget_limits, tracker, error=True, status="exhausted")
            self._observe_latency(started, "exhausted")
            raise
        except TotalTimeoutExceeded as e:
            e.attempts = tracker.attempts
            await self._record(tenant_id, budget_limits, tracker, error=True, status="timeout")
            self._observe_latency(started, "timeout")
            raise
        except Exception:
            await self._record(tenant_id, budget_limits, tracker, error=True, status="fatal")
            self._observe_latency(started, "fatal")
            raise

        response = outcome.response
        await self._record(tenant_id, budget_limits, tracker, error=False, cost=response.cost)
        duration = self._observe_latency(started, "success")
        self._count_tokens(outcome.chosen_model_id, tracker)

        result = ExecutionResult(
            value=response.content,
            requested_model_id=model_id,
            chosen_model_id=outcome.chosen_model_id,
            attempts=tracker.attempts,
            fallback_chain=tracker.fallback_chain(),
            fallback_reason=outcome.fallback_reason,
            tenant_id=tenant_id,
            input_tokens=tracker.total_input_tokens,
            output_tokens=tracker.total_output_tokens,
            cost=response.cost,
            duration_ms=int(duration * 1000),
        )

        logger.info(
            "Model call succeeded",
            chosen_model_id=result.chosen_model_id,
            attempts_count=result.attempts_count,
            fallback_chain=result.fallback_chain,
            fallback_reason=result.fallback_reason.value if result.fallback_reason else None,
            duration_ms=result.duration_ms,
        )
        return result

    async def _record(
        self,
        tenant_id: Optional[str],
        limits: Optional[TenantBudgetLimits],
        tracker: AttemptTracker,
        *,
        error: bool,
        cost: Decimal = Decimal("0"),
        status: Optional[str] = None,
    ) -> None:
        if tenant_id is None:
            return
        try:
            await self.budget.record_execution(
                tenant_id,
                limits,
                cost=cost,
                tokens=tracker.total_tokens,
                error=error,
                status=status,
            )
        except CounterStoreError as e:
            self._store_failed("budget_record", tenant_id, e)

    def _store_failed(self, operation: str, tenant_id: str, error: CounterStoreError) -> None:
        logger.error(
            "Budget store unavailable, call proceeds",
            operation=operation,
            tenant_id=tenant_id,
            error=error.message,
            exc_info=True,
        )
        if self._metrics_enabled:
            metrics.counter_store_errors_total.labels(operation=operation).inc()

    def _observe_latency(self, started: float, outcome: str) -> float:
        duration = self._clock() - started
        if self._metrics_enabled:
            metrics.execution_latency_seconds.labels(outcome=outcome).observe(duration)
        return duration

    def _count_tokens(self, model_id: str, tracker: AttemptTracker) -> None:
        if not self._metrics_enabled:
            return
        if tracker.total_input_tokens:
            metrics.model_tokens_total.labels(model=model_id, token_type="input").inc(
                tracker.total_input_tokens
            )
        if tracker.total_output_tokens:
            metrics.model_tokens_total.labels(model=model_id, token_type="output").inc(
                tracker.total_output_tokens
            )

    async def close(self) -> None:
        """Close the model client and the counter store."""
        await self.client.close()
        await self.store.close()
        logger.info("ReliabilityEngine closed")
