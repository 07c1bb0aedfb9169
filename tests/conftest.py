"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

import pytest

from reliability_layer.config import Settings
from reliability_layer.models.enums import BackoffKind
from reliability_layer.models.policy import BackoffPolicy, CircuitBreakerPolicy, ReliabilityPolicy


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.MAX_RETRIES = 3
    """
    return Settings(
        # === Application ===
        APP_NAME="LLM Reliability Layer (Test)",
        APP_VERSION="0.1.0",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === Redis ===
        REDIS_URL="redis://localhost:6379/0",
        REDIS_MAX_CONNECTIONS=10,
        REDIS_KEY_PREFIX="test",

        # === Retry & Fallback ===
        MAX_RETRIES=0,
        FALLBACK_MODELS=[],
        TOTAL_TIMEOUT=None,

        # === Budgets ===
        BUDGET_ENFORCEMENT="none",

        # === Monitoring ===
        PROMETHEUS_ENABLED=False,  # Disable metrics in tests unless explicitly needed
    )


@pytest.fixture
def make_policy():
    """Factory fixture for ReliabilityPolicy with zero-jitter backoff.

    Usage:
        def test_something(make_policy):
            policy = make_policy(max_retries=2, fallback_models=("b",))
    """
    def _create(
        max_retries: int = 0,
        fallback_models: tuple[str, ...] = (),
        backoff_kind: BackoffKind = BackoffKind.EXPONENTIAL,
        base: float = 0.4,
        max_delay: float = 3.0,
        total_timeout: float | None = None,
        circuit_breaker: CircuitBreakerPolicy | None = None,
        **overrides,
    ) -> ReliabilityPolicy:
        return ReliabilityPolicy(
            max_retries=max_retries,
            backoff=BackoffPolicy(kind=backoff_kind, base=base, max_delay=max_delay, jitter_ratio=0.0),
            fallback_models=fallback_models,
            total_timeout=total_timeout,
            circuit_breaker=circuit_breaker,
            **overrides,
        )

    return _create
