"""Monitoring and metrics instrumentation for the LLM Reliability Layer.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from reliability_layer.monitoring.alerts import AlertManager
from reliability_layer.monitoring.metrics import (
    alerts_total,
    budget_rejections_total,
    circuit_breaker_transitions_total,
    counter_store_errors_total,
    execution_latency_seconds,
    fallbacks_total,
    model_attempts_total,
    model_tokens_total,
    retries_total,
    short_circuits_total,
)

__all__ = [
    "AlertManager",
    "model_attempts_total",
    "retries_total",
    "fallbacks_total",
    "short_circuits_total",
    "circuit_breaker_transitions_total",
    "budget_rejections_total",
    "alerts_total",
    "execution_latency_seconds",
    "model_tokens_total",
    "counter_store_errors_total",
]
