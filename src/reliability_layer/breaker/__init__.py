"""
Circuit breaking per (agent_type, model_id, tenant_id).

State is held in the injected CounterStore so every process sharing the
store sees the same breaker.
"""

from reliability_layer.breaker.circuit_breaker import (
    BreakerKey,
    CircuitBreaker,
    CircuitBreakerState,
)

__all__ = [
    "BreakerKey",
    "CircuitBreaker",
    "CircuitBreakerState",
]
