"""
Counter store persistence layer.

- counter_store.py: CounterStore contract, ResetGuard, in-memory store
- redis_store.py: Redis-backed store (MULTI/EXEC increments, Lua guarded resets)
- redis_client.py: Redis async connection pooling

Storage Strategy:
- One hash per circuit breaker key: {prefix}:cb:{tenant}:{agent}:{model}
- One hash per tenant budget: {prefix}:tenant:{tenant}:budget
- Dates stored as ISO strings, breaker timestamps as epoch seconds
"""

from reliability_layer.persistence.counter_store import (
    CounterStore,
    CounterStoreError,
    InMemoryCounterStore,
    ResetGuard,
)
from reliability_layer.persistence.redis_client import RedisClient
from reliability_layer.persistence.redis_store import RedisCounterStore

__all__ = [
    "CounterStore",
    "CounterStoreError",
    "InMemoryCounterStore",
    "ResetGuard",
    "RedisClient",
    "RedisCounterStore",
]
