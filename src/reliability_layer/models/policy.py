"""
Immutable reliability policy models.

A ReliabilityPolicy is constructed once (from Settings or by the caller)
and passed explicitly into every engine call. Nothing here holds state.
"""

import re
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reliability_layer.models.enums import BackoffKind, ErrorKind

if TYPE_CHECKING:
    from reliability_layer.config import Settings


# Caller programming errors: never retried, never fall back
DEFAULT_NON_FALLBACK_ERRORS: tuple[type[BaseException], ...] = (
    TypeError,
    AttributeError,
    NameError,
    NotImplementedError,
)

PatternLike = Union[str, re.Pattern]


def _check_patterns(patterns: tuple[PatternLike, ...]) -> tuple[PatternLike, ...]:
    for pattern in patterns:
        if isinstance(pattern, str):
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid error pattern {pattern!r}: {e}") from e
    return patterns


class BackoffPolicy(BaseModel):
    """
    Delay between attempts on the same model.

    exponential: min(max_delay, base * 2^(attempt_index - 1)) + jitter
    constant:    base + jitter
    jitter is uniform in [0, jitter_ratio * base].
    """
    model_config = ConfigDict(frozen=True)

    kind: BackoffKind = Field(default=BackoffKind.EXPONENTIAL, description="constant | exponential")
    base: float = Field(default=0.4, ge=0.0, description="Base delay in seconds")
    max_delay: float = Field(default=3.0, ge=0.0, description="Cap for the exponential curve (seconds)")
    jitter_ratio: float = Field(default=0.5, ge=0.0, le=1.0, description="Jitter upper bound as a fraction of base")


class CircuitBreakerPolicy(BaseModel):
    """Breaker thresholds. A policy without one has breaking disabled."""
    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(default=10, ge=1, description="Failures within window that open the breaker")
    window: float = Field(default=60.0, gt=0.0, description="Failure counting window in seconds")
    cooldown: float = Field(default=300.0, ge=0.0, description="Seconds the breaker stays open")


class ErrorPattern(BaseModel):
    """One row of the configurable message pattern -> error kind table."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pattern: PatternLike
    kind: ErrorKind

    @field_validator("pattern")
    @classmethod
    def _valid_regex(cls, v: PatternLike) -> PatternLike:
        _check_patterns((v,))
        return v


class ReliabilityPolicy(BaseModel):
    """
    Retry, fallback, breaker and timeout policy for one logical model call.

    Attributes:
        max_retries: Extra attempts per model after the first (>= 0)
        backoff: Delay curve between same-model attempts
        fallback_models: Ordered models tried after the primary
        total_timeout: Wall-clock ceiling in seconds across all attempts, or None
        circuit_breaker: Breaker thresholds, or None when breaking is disabled
        non_fallback_errors: Exception classes that abort the whole call
        retryable_error_types: Extra exception classes treated as transient
        retryable_error_patterns: Regexes (or plain substrings) marking
            transient errors by message
        error_patterns: Explicit pattern -> kind rows, evaluated before the
            built-in message tables
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_retries: int = Field(default=0, ge=0)
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    fallback_models: tuple[str, ...] = ()
    total_timeout: Optional[float] = Field(default=None, gt=0.0)
    circuit_breaker: Optional[CircuitBreakerPolicy] = None
    non_fallback_errors: tuple[type[BaseException], ...] = DEFAULT_NON_FALLBACK_ERRORS
    retryable_error_types: tuple[type[BaseException], ...] = ()
    retryable_error_patterns: tuple[PatternLike, ...] = ()
    error_patterns: tuple[ErrorPattern, ...] = ()

    @field_validator("retryable_error_patterns")
    @classmethod
    def _valid_patterns(cls, v: tuple[PatternLike, ...]) -> tuple[PatternLike, ...]:
        return _check_patterns(v)

    @property
    def max_attempts(self) -> int:
        """Attempts allowed per model (first try + retries)."""
        return self.max_retries + 1

    def models_for(self, primary: str) -> list[str]:
        """Primary followed by fallbacks, duplicates removed, order kept."""
        return list(dict.fromkeys([primary, *self.fallback_models]))

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ReliabilityPolicy":
        """Build the default policy from application settings."""
        breaker = None
        if settings.CIRCUIT_BREAKER_ENABLED:
            breaker = CircuitBreakerPolicy(
                failure_threshold=settings.CIRCUIT_BREAKER_ERRORS,
                window=settings.CIRCUIT_BREAKER_WINDOW,
                cooldown=settings.CIRCUIT_BREAKER_COOLDOWN,
            )
        return cls(
            max_retries=settings.MAX_RETRIES,
            backoff=BackoffPolicy(
                kind=BackoffKind(settings.BACKOFF_STRATEGY.lower()),
                base=settings.BACKOFF_BASE,
                max_delay=settings.BACKOFF_MAX_DELAY,
            ),
            fallback_models=tuple(settings.FALLBACK_MODELS),
            total_timeout=settings.TOTAL_TIMEOUT,
            circuit_breaker=breaker,
            retryable_error_patterns=tuple(settings.RETRYABLE_PATTERNS),
        )
