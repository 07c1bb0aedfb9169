"""
Result surface returned to the caller after a successful logical call.
"""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from reliability_layer.models.attempt import CallAttempt
from reliability_layer.models.enums import ErrorKind


class ExecutionResult(BaseModel):
    """
    Successful outcome of ReliabilityEngine.execute.

    value is the collaborator's response payload, untouched. fallback_chain
    lists the models actually called, in order (short-circuited models are
    recorded in attempts but not in the chain).
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any = Field(..., description="Response payload from the model-call collaborator")
    requested_model_id: str
    chosen_model_id: str
    attempts: list[CallAttempt]
    fallback_chain: list[str]
    fallback_reason: Optional[ErrorKind] = None
    cache_hit: bool = False
    retryable: bool = False
    rate_limited: bool = False
    tenant_id: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: Decimal = Decimal("0")
    duration_ms: int = 0

    @property
    def attempts_count(self) -> int:
        return len(self.attempts)

    @property
    def used_fallback(self) -> bool:
        return self.chosen_model_id != self.requested_model_id

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
