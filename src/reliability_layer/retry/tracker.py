"""
Attempt Tracker.

Per-call, append-only accumulator of CallAttempt records. An attempt is
opened with start_attempt() and sealed exactly once with complete_success(),
complete_failure() or (for breaker skips) record_short_circuit(). Sealed
records are frozen pydantic models; the tracker only appends.
"""

import time
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from reliability_layer.llm.base_client import ModelCallResponse
from reliability_layer.models.attempt import CallAttempt, ModelFailure
from reliability_layer.models.enums import AttemptOutcome, ErrorKind, RetryReason


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingAttempt:
    """Open attempt handle; becomes a CallAttempt when sealed."""

    model_id: str
    attempt_index: int
    started_at: datetime
    started_clock: float
    sealed: bool = False


class AttemptTracker:
    """
    Ordered audit trail of every attempt made for one logical call.

    Attributes:
        error_message_max_length: Error messages are truncated to this length
        backtrace_lines: Traceback frames kept per failed attempt
    """

    def __init__(
        self,
        error_message_max_length: int = 1000,
        backtrace_lines: int = 5,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.error_message_max_length = error_message_max_length
        self.backtrace_lines = backtrace_lines
        self._clock = clock
        self._now = now
        self._attempts: list[CallAttempt] = []
        self._errors: dict[int, BaseException] = {}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_attempt(self, model_id: str, attempt_index: int) -> PendingAttempt:
        return PendingAttempt(
            model_id=model_id,
            attempt_index=attempt_index,
            started_at=self._now(),
            started_clock=self._clock(),
        )

    def complete_success(
        self, pending: PendingAttempt, response: Optional[ModelCallResponse] = None
    ) -> CallAttempt:
        return self._seal(
            pending,
            outcome=AttemptOutcome.SUCCESS,
            input_tokens=response.input_tokens if response else None,
            output_tokens=response.output_tokens if response else None,
        )

    def complete_failure(
        self,
        pending: PendingAttempt,
        error: BaseException,
        kind: ErrorKind,
        retry_reason: Optional[RetryReason] = None,
        backoff_seconds: float = 0.0,
    ) -> CallAttempt:
        attempt = self._seal(
            pending,
            outcome=AttemptOutcome.ERROR,
            error_kind=kind,
            error_class=type(error).__name__,
            error_message=self._truncate(str(error) or type(error).__name__),
            backtrace=self._backtrace(error),
            retry_reason=retry_reason,
            backoff_ms=int(round(backoff_seconds * 1000)),
        )
        self._errors[len(self._attempts) - 1] = error
        return attempt

    def record_short_circuit(self, model_id: str, error: BaseException) -> CallAttempt:
        """Record a breaker skip: no call was made for this model."""
        now = self._now()
        attempt = CallAttempt(
            model_id=model_id,
            attempt_index=0,
            started_at=now,
            finished_at=now,
            outcome=AttemptOutcome.SHORT_CIRCUITED,
            error_kind=ErrorKind.FALLBACK_ELIGIBLE,
            error_class=type(error).__name__,
            error_message=self._truncate(str(error)),
            short_circuited=True,
        )
        self._attempts.append(attempt)
        self._errors[len(self._attempts) - 1] = error
        return attempt

    def _seal(self, pending: PendingAttempt, **fields: Any) -> CallAttempt:
        if pending.sealed:
            raise RuntimeError(
                f"Attempt {pending.attempt_index} on {pending.model_id} already sealed"
            )
        pending.sealed = True
        duration_ms = max(0, int(round((self._clock() - pending.started_clock) * 1000)))
        attempt = CallAttempt(
            model_id=pending.model_id,
            attempt_index=pending.attempt_index,
            started_at=pending.started_at,
            finished_at=self._now(),
            duration_ms=duration_ms,
            **fields,
        )
        self._attempts.append(attempt)
        return attempt

    def _truncate(self, message: str) -> str:
        limit = self.error_message_max_length
        if len(message) <= limit:
            return message
        return message[: max(0, limit - 3)] + "..."

    def _backtrace(self, error: BaseException) -> list[str]:
        if error.__traceback__ is None or self.backtrace_lines <= 0:
            return []
        frames = traceback.format_tb(error.__traceback__)
        return [frame.strip() for frame in frames[: self.backtrace_lines]]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def attempts(self) -> list[CallAttempt]:
        return list(self._attempts)

    @property
    def attempts_count(self) -> int:
        return len(self._attempts)

    @property
    def failed_attempts_count(self) -> int:
        return sum(1 for a in self._attempts if a.failed)

    @property
    def short_circuited_count(self) -> int:
        return sum(1 for a in self._attempts if a.short_circuited)

    @property
    def successful_attempt(self) -> Optional[CallAttempt]:
        return next((a for a in self._attempts if a.succeeded), None)

    @property
    def last_failed_attempt(self) -> Optional[CallAttempt]:
        return next((a for a in reversed(self._attempts) if not a.succeeded), None)

    @property
    def last_error(self) -> Optional[BaseException]:
        if not self._errors:
            return None
        return self._errors[max(self._errors)]

    @property
    def chosen_model_id(self) -> Optional[str]:
        success = self.successful_attempt
        return success.model_id if success else None

    @property
    def total_input_tokens(self) -> int:
        return sum(a.input_tokens or 0 for a in self._attempts)

    @property
    def total_output_tokens(self) -> int:
        return sum(a.output_tokens or 0 for a in self._attempts)

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def total_duration_ms(self) -> int:
        return sum(a.duration_ms for a in self._attempts)

    def models_tried(self) -> list[str]:
        """Every model touched, skipped ones included, in chain order."""
        return list(dict.fromkeys(a.model_id for a in self._attempts))

    def fallback_chain(self) -> list[str]:
        """Models actually called, in chain order."""
        return list(dict.fromkeys(a.model_id for a in self._attempts if not a.short_circuited))

    def failures_by_model(self) -> list[ModelFailure]:
        """One diagnostics entry per failed model: its last recorded error."""
        last_by_model: dict[str, CallAttempt] = {}
        calls_by_model: dict[str, int] = {}
        for attempt in self._attempts:
            if attempt.succeeded:
                continue
            last_by_model[attempt.model_id] = attempt
            if not attempt.short_circuited:
                calls_by_model[attempt.model_id] = calls_by_model.get(attempt.model_id, 0) + 1
        return [
            ModelFailure(
                model_id=model_id,
                attempts=calls_by_model.get(model_id, 0),
                short_circuited=attempt.short_circuited,
                error_kind=attempt.error_kind or ErrorKind.FALLBACK_ELIGIBLE,
                error_class=attempt.error_class or "UnknownError",
                error_message=attempt.error_message or "",
                backtrace=attempt.backtrace,
            )
            for model_id, attempt in last_by_model.items()
        ]

    def to_list(self) -> list[dict[str, Any]]:
        return [a.to_dict() for a in self._attempts]
