"""
Integration tests for the Redis counter store, breaker and budget tracker.

Requires Redis on localhost:6379 (database 15 is flushed around each test).
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from reliability_layer.breaker.circuit_breaker import BreakerKey, CircuitBreaker
from reliability_layer.budget.tracker import BudgetTracker
from reliability_layer.models.budget import TenantBudgetLimits
from reliability_layer.models.enums import EnforcementMode
from reliability_layer.models.policy import CircuitBreakerPolicy
from reliability_layer.persistence.counter_store import ResetGuard
from reliability_layer.retry.exceptions import BudgetExceeded

pytestmark = pytest.mark.integration


class Clock:
    def __init__(self, now: float = 10_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_increment_and_read(redis_store):
    await redis_store.atomic_increment("k", {"count": 2, "cost": Decimal("0.25")}, set_fields={"status": "ok"})
    record = await redis_store.atomic_increment("k", {"count": 1, "cost": Decimal("0.5")})

    assert record["count"] == "3"
    assert float(record["cost"]) == pytest.approx(0.75)
    assert record["status"] == "ok"
    assert await redis_store.read("k") == record


@pytest.mark.asyncio
async def test_lua_guarded_reset(redis_store):
    guard = ResetGuard("reset_date", "2026-03-14")

    assert await redis_store.conditional_reset("k", guard, {"count": 0, "reset_date": "2026-03-14"}) is True
    await redis_store.atomic_increment("k", {"count": 5})
    assert await redis_store.conditional_reset("k", guard, {"count": 0, "reset_date": "2026-03-14"}) is False
    assert (await redis_store.read("k"))["count"] == "5"

    later = ResetGuard("reset_date", "2026-03-15")
    assert await redis_store.conditional_reset("k", later, {"count": 0, "reset_date": "2026-03-15"}) is True
    assert (await redis_store.read("k"))["count"] == "0"


@pytest.mark.asyncio
async def test_lua_numeric_guard_and_field_deletion(redis_store):
    await redis_store.atomic_increment("k", {"failures": 3}, set_fields={"opened_at": 1000.0})

    # "999.5" > "1000.0" lexicographically; the numeric guard must not be fooled
    assert await redis_store.conditional_reset(
        "k", ResetGuard("opened_at", 999.5, numeric=True), {"failures": 0}
    ) is False
    assert await redis_store.conditional_reset(
        "k", ResetGuard("opened_at", 1000.0, numeric=True, inclusive=True), {"opened_at": None}
    ) is True
    assert await redis_store.read("k") == {"failures": "3"}


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(redis_store):
    await asyncio.gather(*(redis_store.atomic_increment("k", {"count": 1}) for _ in range(50)))

    assert (await redis_store.read("k"))["count"] == "50"


@pytest.mark.asyncio
async def test_breaker_round_trip(redis_store):
    clock = Clock()
    breaker = CircuitBreaker(
        redis_store,
        CircuitBreakerPolicy(failure_threshold=2, window=60.0, cooldown=30.0),
        clock=clock,
        key_prefix="test",
        metrics_enabled=False,
    )
    key = BreakerKey("SummaryAgent", "gpt-4o", "acme")

    await breaker.record_failure(key)
    assert await breaker.record_failure(key) is True
    assert await breaker.is_open(key) is True

    clock.now += 30.0
    assert await breaker.is_open(key) is False
    await breaker.record_success(key)
    assert await breaker.failure_count(key) == 0


@pytest.mark.asyncio
async def test_budget_rollover_and_hard_cap(redis_store):
    today = [date(2026, 3, 14)]
    tracker = BudgetTracker(redis_store, today=lambda: today[0], key_prefix="test", metrics_enabled=False)
    limits = TenantBudgetLimits(enforcement=EnforcementMode.HARD, daily_execution_limit=3)

    await asyncio.gather(*(tracker.record_execution("acme", limits, tokens=10) for _ in range(3)))

    counters = await tracker.counters("acme")
    assert counters.daily_executions_count == 3
    assert counters.monthly_tokens_used == 30
    with pytest.raises(BudgetExceeded):
        await tracker.check_budget("acme", limits)

    today[0] = date(2026, 3, 15)
    await tracker.check_budget("acme", limits)
    counters = await tracker.counters("acme")
    assert counters.daily_executions_count == 0
    assert counters.monthly_executions_count == 3


@pytest.mark.asyncio
async def test_cost_increments_keep_cent_precision(redis_store):
    for _ in range(100):
        record = await redis_store.atomic_increment("k", {"cost": Decimal("0.01")})

    assert Decimal(record["cost"]).quantize(Decimal("0.000001")) == Decimal("1.000000")
