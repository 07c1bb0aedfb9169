"""
Error Classifier.

Maps a raised error to an ErrorKind. Rules are evaluated in priority order
and the first match wins:

1. Engine-synthetic errors (total timeout and budget are fatal, open
   circuit is fallback-eligible)
2. Policy non-fallback error types -> FATAL
3. Explicit `kind` hook on the error
4. Structured status code (error.status_code or an httpx response):
   429 -> RATE_LIMITED, 408/5xx -> RETRYABLE, other 4xx -> FALLBACK_ELIGIBLE
5. Transient exception types (timeouts, connection errors, policy extras)
6. Message patterns: policy table, policy retryable patterns, built-in
   rate-limit vocabulary, built-in transient vocabulary
7. Default -> FALLBACK_ELIGIBLE

Message text is the lowest tier: provider wording is not stable.
"""

import asyncio
import re
from typing import Optional

import httpx

from reliability_layer.models.enums import ErrorKind
from reliability_layer.models.policy import PatternLike, ReliabilityPolicy
from reliability_layer.retry.exceptions import (
    BudgetExceeded,
    CircuitOpenError,
    TotalTimeoutExceeded,
)


RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    r"rate[\s_-]?limit",
    r"too many requests",
    r"\b429\b",
    r"quota",
    r"resource[\s_-]?exhausted",
    r"throttl",
)

TRANSIENT_PATTERNS: tuple[str, ...] = (
    r"\b50[0234]\b",
    r"internal server error",
    r"bad gateway",
    r"service unavailable",
    r"gateway timeout",
    r"timed? ?out",
    r"connection (reset|refused|aborted)",
    r"overloaded",
    r"capacity",
)

TRANSIENT_ERROR_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TimeoutException,
    httpx.TransportError,
)


def _compile(pattern: PatternLike) -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern, re.IGNORECASE)


def status_code_of(error: BaseException) -> Optional[int]:
    """Extract an HTTP-status-like code from the error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    code = getattr(error, "status_code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    return None


def kind_for_status(status_code: int) -> Optional[ErrorKind]:
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 408 or 500 <= status_code <= 599:
        return ErrorKind.RETRYABLE
    if 400 <= status_code <= 499:
        return ErrorKind.FALLBACK_ELIGIBLE
    return None


class ErrorClassifier:
    """
    Classifies errors for one ReliabilityPolicy.

    Patterns are compiled once at construction; classify() is pure.

    Attributes:
        policy: Policy supplying non-fallback types and extra patterns
    """

    def __init__(self, policy: ReliabilityPolicy):
        self.policy = policy
        table: list[tuple[re.Pattern, ErrorKind]] = [
            (_compile(row.pattern), row.kind) for row in policy.error_patterns
        ]
        table.extend(
            (_compile(p), ErrorKind.RETRYABLE) for p in policy.retryable_error_patterns
        )
        table.extend((_compile(p), ErrorKind.RATE_LIMITED) for p in RATE_LIMIT_PATTERNS)
        table.extend((_compile(p), ErrorKind.RETRYABLE) for p in TRANSIENT_PATTERNS)
        self._message_table = table
        self._transient_types = TRANSIENT_ERROR_TYPES + tuple(policy.retryable_error_types)

    def classify(self, error: BaseException) -> ErrorKind:
        if isinstance(error, (TotalTimeoutExceeded, BudgetExceeded)):
            return ErrorKind.FATAL
        if isinstance(error, CircuitOpenError):
            return ErrorKind.FALLBACK_ELIGIBLE

        if self.policy.non_fallback_errors and isinstance(error, self.policy.non_fallback_errors):
            return ErrorKind.FATAL

        hook = getattr(error, "kind", None)
        if isinstance(hook, ErrorKind):
            return hook

        status = status_code_of(error)
        if status is not None:
            kind = kind_for_status(status)
            if kind is not None:
                return kind

        if isinstance(error, self._transient_types):
            return ErrorKind.RETRYABLE

        message = self._message_of(error)
        if message:
            for pattern, kind in self._message_table:
                if pattern.search(message):
                    return kind

        return ErrorKind.FALLBACK_ELIGIBLE

    @staticmethod
    def _message_of(error: BaseException) -> str:
        return str(error) or getattr(error, "message", "") or ""


def classify_error(error: BaseException, policy: ReliabilityPolicy) -> ErrorKind:
    """One-off classification; prefer a shared ErrorClassifier in loops."""
    return ErrorClassifier(policy).classify(error)
