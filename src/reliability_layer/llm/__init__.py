"""
Model-call collaborator contract and provider error hierarchy.
"""

from reliability_layer.llm.base_client import BaseModelClient, ModelCallResponse
from reliability_layer.llm.exceptions import (
    ModelClientError,
    ModelConnectionError,
    ModelGenerationError,
    ModelInvalidRequestError,
    ModelNotAvailableError,
    ModelRateLimitError,
    ModelTimeoutError,
)

__all__ = [
    "BaseModelClient",
    "ModelCallResponse",
    "ModelClientError",
    "ModelConnectionError",
    "ModelGenerationError",
    "ModelInvalidRequestError",
    "ModelNotAvailableError",
    "ModelRateLimitError",
    "ModelTimeoutError",
]
