"""
Exceptions raised by model-call collaborators.

Provider clients raise these so the Error Classifier can use structured
fields (status_code, kind) before falling back to message matching. A
client that knows exactly how an error should be treated sets `kind`
explicitly; the class-level `default_kind` covers the common cases.
"""

from typing import Any, Optional

from reliability_layer.models.enums import ErrorKind


class ModelClientError(Exception):
    """
    Base exception for all model-call collaborator errors.

    Attributes:
        message: Human-readable error message
        details: Provider-specific structured data (response body, request id, ...)
        status_code: HTTP-status-like code reported by the provider, if any
        provider: Provider name (e.g. "openai", "anthropic", "ollama")
        kind: Explicit classification hook; overrides every other rule
            except the policy's non-fallback error types
    """

    default_kind: Optional[ErrorKind] = None

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        self.provider = provider
        self.kind = kind if kind is not None else self.default_kind


class ModelConnectionError(ModelClientError):
    """
    Raised when the provider cannot be reached.

    Includes network errors, DNS failures, connection resets.
    Retried on the same model.
    """
    default_kind = ErrorKind.RETRYABLE


class ModelTimeoutError(ModelConnectionError):
    """Raised when a single provider request exceeds its own timeout."""
    pass


class ModelRateLimitError(ModelClientError):
    """
    Raised when the provider rate-limits or quota-limits the request.

    Falls back to the next model; retried only on the last model.
    """
    default_kind = ErrorKind.RATE_LIMITED


class ModelGenerationError(ModelClientError):
    """
    Raised when the provider returns an error during generation.

    Unclassified by default: the status code or message decides.
    """
    pass


class ModelNotAvailableError(ModelGenerationError):
    """
    Raised when the requested model does not exist or is disabled.

    Triggers immediate fallback without retrying the same model.
    """
    default_kind = ErrorKind.FALLBACK_ELIGIBLE


class ModelInvalidRequestError(ModelClientError):
    """
    Raised when the provider rejects the payload itself (bad parameters).

    Another model would reject it too, so the call is aborted.
    """
    default_kind = ErrorKind.FATAL
