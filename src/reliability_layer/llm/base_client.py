"""
Model-call collaborator contract.

The engine never talks to a provider directly. It calls
`BaseModelClient.invoke(model_id, payload)` and treats the payload and the
response content as opaque. Concrete clients (OpenAI, Anthropic, Ollama,
...) live outside this package.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger(__name__)


class ModelCallResponse(BaseModel):
    """
    Standardized response from a model-call collaborator.

    Token and cost fields feed the tenant budget counters; content is
    returned to the caller unmodified.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    content: Any = Field(..., description="Provider response payload (opaque to the engine)")
    model_id: str = Field(..., description="Model that actually produced the response")
    input_tokens: Optional[int] = Field(default=None, ge=0, description="Prompt tokens")
    output_tokens: Optional[int] = Field(default=None, ge=0, description="Completion tokens")
    cost: Decimal = Field(default=Decimal("0"), ge=0, description="Cost of this call in account currency")


class BaseModelClient(ABC):
    """
    Abstract base class for model-call collaborators.

    Responsibilities:
    - Perform exactly one provider call per invoke()
    - Raise ModelClientError subclasses (or httpx errors) on failure

    Does NOT handle:
    - Retries, fallback, circuit breaking (that's the engine's job)
    - Budget accounting (that's BudgetTracker's job)
    """

    @abstractmethod
    async def invoke(self, model_id: str, payload: Any) -> ModelCallResponse:
        """
        Call `model_id` with `payload`.

        Args:
            model_id: Model identifier chosen by the fallback orchestrator
            payload: Opaque request payload supplied by the caller

        Returns:
            ModelCallResponse with content and usage

        Raises:
            ModelClientError: Classified provider failure
        """

    async def close(self) -> None:
        """Release connections. Default implementation does nothing."""
        logger.debug("Closing model client", client_class=self.__class__.__name__)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
