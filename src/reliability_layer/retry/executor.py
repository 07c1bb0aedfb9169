"""
Retry Executor: bounded retry of a single model.

Loop over attempts 1..max_retries+1:
- every attempt is recorded in the AttemptTracker, whatever its outcome
- a fatal error is re-raised unmodified, aborting the whole call
- a retryable error (or a rate-limit on the last model in the chain) is
  retried after the backoff delay, capped by the Total-Timeout Guard
- anything else stops the loop with RetryBudgetExhausted, which the
  Fallback Orchestrator turns into an advance to the next model
"""

import random
from typing import Awaitable, Callable, Optional

import structlog

from reliability_layer.llm.base_client import ModelCallResponse
from reliability_layer.models.enums import AttemptOutcome, ErrorKind, RetryReason
from reliability_layer.models.policy import ReliabilityPolicy
from reliability_layer.monitoring import metrics
from reliability_layer.retry.backoff import compute_delay
from reliability_layer.retry.classifier import ErrorClassifier
from reliability_layer.retry.deadline import TotalTimeoutGuard
from reliability_layer.retry.exceptions import RetryBudgetExhausted, TotalTimeoutExceeded
from reliability_layer.retry.tracker import AttemptTracker

logger = structlog.get_logger(__name__)

AttemptFn = Callable[[str, int], Awaitable[ModelCallResponse]]
# Reports a failed attempt to the breaker; returns True if the breaker just opened
FailureCallback = Callable[[str, BaseException, ErrorKind], Awaitable[bool]]


class RetryExecutor:
    """
    Drives bounded same-model retries for one logical call.

    Attributes:
        policy: Retry/backoff policy
        classifier: Error classifier built for the policy
        tracker: Attempt audit trail shared with the orchestrator
        deadline: Total-timeout guard shared with the orchestrator
    """

    def __init__(
        self,
        policy: ReliabilityPolicy,
        classifier: ErrorClassifier,
        tracker: AttemptTracker,
        deadline: TotalTimeoutGuard,
        rng: Callable[[], float] = random.random,
        metrics_enabled: bool = True,
    ):
        self.policy = policy
        self.classifier = classifier
        self.tracker = tracker
        self.deadline = deadline
        self._rng = rng
        self._metrics_enabled = metrics_enabled

    async def execute(
        self,
        model_id: str,
        attempt_fn: AttemptFn,
        has_fallbacks: bool,
        on_failure: Optional[FailureCallback] = None,
    ) -> ModelCallResponse:
        """
        Run `attempt_fn` against `model_id` until success or give-up.

        Args:
            model_id: Model to call
            attempt_fn: Coroutine function (model_id, attempt_index) -> response
            has_fallbacks: Whether further models remain after this one
            on_failure: Breaker hook called after each non-fatal failure

        Returns:
            ModelCallResponse of the first successful attempt

        Raises:
            RetryBudgetExhausted: Stop using this model (orchestrator advances)
            TotalTimeoutExceeded: Wall-clock budget ran out
            BaseException: The original error, when classified fatal
        """
        max_attempts = self.policy.max_attempts

        for attempt_index in range(1, max_attempts + 1):
            self.deadline.enforce(model_id)
            pending = self.tracker.start_attempt(model_id, attempt_index)

            logger.debug(
                "Model attempt starting",
                model_id=model_id,
                attempt=attempt_index,
                max_attempts=max_attempts,
            )

            try:
                response = await self.deadline.run(
                    attempt_fn(model_id, attempt_index), model_id=model_id
                )
            except TotalTimeoutExceeded as e:
                self.tracker.complete_failure(pending, e, ErrorKind.FATAL)
                self._count_attempt(model_id, AttemptOutcome.ERROR)
                raise
            except Exception as e:
                kind = self.classifier.classify(e)
                self._count_attempt(model_id, AttemptOutcome.ERROR)

                if kind is ErrorKind.FATAL:
                    self.tracker.complete_failure(pending, e, kind)
                    logger.error(
                        "Fatal error, aborting call",
                        model_id=model_id,
                        attempt=attempt_index,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    raise

                breaker_opened = False
                if on_failure is not None:
                    breaker_opened = await on_failure(model_id, e, kind)

                retry_reason = self._retry_reason(kind, has_fallbacks)
                can_retry = (
                    retry_reason is not None
                    and attempt_index < max_attempts
                    and not breaker_opened
                )
                if not can_retry:
                    self.tracker.complete_failure(pending, e, kind)
                    logger.warning(
                        "Giving up on model",
                        model_id=model_id,
                        attempts_made=attempt_index,
                        error_kind=kind.value,
                        error_type=type(e).__name__,
                        breaker_opened=breaker_opened,
                    )
                    raise RetryBudgetExhausted(
                        model_id=model_id,
                        last_error=e,
                        error_kind=kind,
                        attempts_made=attempt_index,
                    ) from e

                delay = compute_delay(self.policy.backoff, attempt_index, self._rng)
                self.tracker.complete_failure(
                    pending, e, kind, retry_reason=retry_reason, backoff_seconds=delay
                )
                logger.info(
                    "Retry scheduled",
                    model_id=model_id,
                    attempt=attempt_index,
                    next_attempt=attempt_index + 1,
                    delay_seconds=round(delay, 3),
                    reason=retry_reason.value,
                    error_type=type(e).__name__,
                )
                if self._metrics_enabled:
                    metrics.retries_total.labels(model=model_id, reason=retry_reason.value).inc()
                await self.deadline.sleep(delay, model_id=model_id)
                continue

            self.tracker.complete_success(pending, response)
            self._count_attempt(model_id, AttemptOutcome.SUCCESS)
            logger.debug("Model attempt succeeded", model_id=model_id, attempt=attempt_index)
            return response

        raise AssertionError("retry loop exited without outcome")

    @staticmethod
    def _retry_reason(kind: ErrorKind, has_fallbacks: bool) -> Optional[RetryReason]:
        if kind is ErrorKind.RETRYABLE:
            return RetryReason.RETRYABLE_ERROR
        if kind is ErrorKind.RATE_LIMITED and not has_fallbacks:
            return RetryReason.RATE_LIMITED
        return None

    def _count_attempt(self, model_id: str, outcome: AttemptOutcome) -> None:
        if self._metrics_enabled:
            metrics.model_attempts_total.labels(model=model_id, outcome=outcome.value).inc()
