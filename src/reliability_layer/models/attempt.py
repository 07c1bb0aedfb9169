"""
Audit-trail models for individual model invocation attempts.

A CallAttempt is sealed (built) only once the attempt completes and is
immutable afterwards. ModelFailure aggregates the attempts of one model
for the diagnostics attached to AllModelsExhausted.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from reliability_layer.models.enums import AttemptOutcome, ErrorKind, RetryReason


class CallAttempt(BaseModel):
    """
    One model invocation attempt (or a short-circuited skip).

    attempt_index is 1-based within the model. Short-circuited entries have
    attempt_index 0 and identical started/finished timestamps.
    """
    model_config = ConfigDict(frozen=True)

    model_id: str = Field(..., description="Model identifier attempted")
    attempt_index: int = Field(..., ge=0, description="1-based index within this model (0 if short-circuited)")
    started_at: datetime
    finished_at: datetime
    duration_ms: int = Field(default=0, ge=0)
    outcome: AttemptOutcome
    error_kind: Optional[ErrorKind] = None
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    backtrace: list[str] = Field(default_factory=list, description="First lines of the error traceback")
    retry_reason: Optional[RetryReason] = Field(default=None, description="Set when another same-model attempt followed")
    backoff_ms: int = Field(default=0, ge=0, description="Delay applied before the next attempt")
    short_circuited: bool = False
    input_tokens: Optional[int] = Field(default=None, ge=0)
    output_tokens: Optional[int] = Field(default=None, ge=0)

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome is AttemptOutcome.ERROR

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation for logs and persistence."""
        return self.model_dump(mode="json")


class ModelFailure(BaseModel):
    """Per-model diagnostics entry: the last error seen for that model."""
    model_config = ConfigDict(frozen=True)

    model_id: str
    attempts: int = Field(..., ge=0)
    short_circuited: bool = False
    error_kind: ErrorKind
    error_class: str
    error_message: str
    backtrace: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
