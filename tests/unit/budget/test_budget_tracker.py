"""
Unit tests for BudgetTracker: enforcement modes, atomic recording,
daily/monthly rollover and queries.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from reliability_layer.budget.tracker import CHECK_ORDER, BudgetTracker
from reliability_layer.models.budget import (
    DAILY_COST,
    DAILY_EXECUTIONS,
    DAILY_RESET_DATE,
    MONTHLY_COST,
    MONTHLY_RESET_DATE,
    TenantBudgetLimits,
)
from reliability_layer.models.enums import AlertEvent, BudgetLimitKind, EnforcementMode
from reliability_layer.monitoring.alerts import AlertManager
from reliability_layer.retry.exceptions import BudgetExceeded


TENANT = "acme"


class FakeToday:
    def __init__(self, start: date):
        self.value = start

    def __call__(self) -> date:
        return self.value


@pytest.fixture
def today():
    return FakeToday(date(2026, 3, 14))


@pytest.fixture
def alert_handler():
    return AsyncMock()


@pytest.fixture
def tracker(memory_store, today, alert_handler):
    return BudgetTracker(
        memory_store,
        alert_manager=AlertManager(handler=alert_handler, metrics_enabled=False),
        today=today,
        key_prefix="test",
        metrics_enabled=False,
    )


def hard(**limits) -> TenantBudgetLimits:
    return TenantBudgetLimits(enforcement=EnforcementMode.HARD, **limits)


def soft(**limits) -> TenantBudgetLimits:
    return TenantBudgetLimits(enforcement=EnforcementMode.SOFT, **limits)


class TestHardEnforcement:
    @pytest.mark.asyncio
    async def test_blocks_at_limit(self, tracker):
        limits = hard(daily_cost_limit=Decimal("10.0"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("10.0"))

        for _ in range(3):
            with pytest.raises(BudgetExceeded) as exc_info:
                await tracker.check_budget(TENANT, limits)

        error = exc_info.value
        assert error.tenant_id == TENANT
        assert error.limit_kind is BudgetLimitKind.DAILY_COST
        assert error.limit == Decimal("10.0")
        assert error.current == Decimal("10.0")

    @pytest.mark.asyncio
    async def test_rejection_leaves_counters_unchanged(self, tracker):
        limits = hard(daily_cost_limit=Decimal("10.0"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("10.0"), tokens=50)
        before = await tracker.counters(TENANT)

        with pytest.raises(BudgetExceeded):
            await tracker.check_budget(TENANT, limits)

        assert await tracker.counters(TENANT) == before

    @pytest.mark.asyncio
    async def test_below_limit_passes(self, tracker):
        limits = hard(daily_cost_limit=Decimal("10.0"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("9.99"))

        await tracker.check_budget(TENANT, limits)

    @pytest.mark.asyncio
    async def test_first_breached_limit_in_order_wins(self, tracker):
        limits = hard(monthly_cost_limit=Decimal("1"), daily_token_limit=10, daily_execution_limit=1)
        await tracker.record_execution(TENANT, limits, cost=Decimal("5"), tokens=100)

        with pytest.raises(BudgetExceeded) as exc_info:
            await tracker.check_budget(TENANT, limits)

        assert exc_info.value.limit_kind is BudgetLimitKind.MONTHLY_COST

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "limits,kind,event",
        [
            (hard(daily_token_limit=100), BudgetLimitKind.DAILY_TOKENS, AlertEvent.TOKEN_HARD_CAP),
            (hard(monthly_token_limit=100), BudgetLimitKind.MONTHLY_TOKENS, AlertEvent.TOKEN_HARD_CAP),
            (hard(daily_execution_limit=1), BudgetLimitKind.DAILY_EXECUTIONS, AlertEvent.BUDGET_HARD_CAP),
            (hard(monthly_execution_limit=1), BudgetLimitKind.MONTHLY_EXECUTIONS, AlertEvent.BUDGET_HARD_CAP),
        ],
    )
    async def test_each_dimension_enforced(self, tracker, alert_handler, limits, kind, event):
        await tracker.record_execution(TENANT, limits, tokens=100)

        with pytest.raises(BudgetExceeded) as exc_info:
            await tracker.check_budget(TENANT, limits)

        assert exc_info.value.limit_kind is kind
        sent_event, payload = alert_handler.await_args.args
        assert sent_event is event
        assert payload["tenant_id"] == TENANT
        assert payload["limit_kind"] == kind.value

    def test_check_order_constant(self):
        assert CHECK_ORDER[0] is BudgetLimitKind.DAILY_COST
        assert CHECK_ORDER[-1] is BudgetLimitKind.MONTHLY_EXECUTIONS
        assert len(CHECK_ORDER) == 6


class TestSoftAndNone:
    @pytest.mark.asyncio
    async def test_soft_never_blocks(self, tracker):
        limits = soft(daily_cost_limit=Decimal("1"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("5"))

        await tracker.check_budget(TENANT, limits)

    @pytest.mark.asyncio
    async def test_soft_alerts_after_recording(self, tracker, alert_handler):
        limits = soft(daily_cost_limit=Decimal("1"), daily_token_limit=10)
        await tracker.record_execution(TENANT, limits, cost=Decimal("0.5"), tokens=5)
        alert_handler.assert_not_awaited()

        await tracker.record_execution(TENANT, limits, cost=Decimal("0.5"), tokens=5)

        events = [call.args[0] for call in alert_handler.await_args_list]
        assert events == [AlertEvent.BUDGET_SOFT_CAP, AlertEvent.TOKEN_SOFT_CAP]
        payload = alert_handler.await_args_list[0].args[1]
        assert payload["limit"] == "1"
        assert payload["current"] == "1.0"

    @pytest.mark.asyncio
    async def test_soft_alert_sent_once_per_window(self, tracker, alert_handler, today):
        limits = soft(daily_cost_limit=Decimal("1"))
        for _ in range(20):
            await tracker.record_execution(TENANT, limits, cost=Decimal("1"))

        assert alert_handler.await_count == 1

        today.value = date(2026, 3, 15)
        await tracker.record_execution(TENANT, limits, cost=Decimal("1"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("1"))

        events = [call.args[0] for call in alert_handler.await_args_list]
        assert events == [AlertEvent.BUDGET_SOFT_CAP, AlertEvent.BUDGET_SOFT_CAP]

    @pytest.mark.asyncio
    async def test_monthly_soft_alert_not_repeated_on_new_day(self, tracker, alert_handler, today):
        limits = soft(monthly_token_limit=10)
        await tracker.record_execution(TENANT, limits, tokens=10)
        today.value = date(2026, 3, 20)
        await tracker.record_execution(TENANT, limits, tokens=10)

        events = [call.args[0] for call in alert_handler.await_args_list]
        assert events == [AlertEvent.TOKEN_SOFT_CAP]

    @pytest.mark.asyncio
    async def test_concurrent_recordings_alert_once(self, tracker, alert_handler):
        limits = soft(daily_execution_limit=1)

        await asyncio.gather(*(tracker.record_execution(TENANT, limits) for _ in range(10)))

        assert alert_handler.await_count == 1

    @pytest.mark.asyncio
    async def test_soft_alerts_respect_disabled_alerts(self, memory_store, today, alert_handler):
        tracker = BudgetTracker(
            memory_store,
            alert_manager=AlertManager(handler=alert_handler, enabled=False, metrics_enabled=False),
            today=today,
            metrics_enabled=False,
        )
        await tracker.record_execution(TENANT, soft(daily_execution_limit=1))

        alert_handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_none_mode_records_without_checks(self, tracker, alert_handler):
        limits = TenantBudgetLimits(enforcement=EnforcementMode.NONE, daily_execution_limit=1)
        for _ in range(3):
            await tracker.check_budget(TENANT, limits)
            await tracker.record_execution(TENANT, limits)

        assert (await tracker.counters(TENANT)).daily_executions_count == 3
        alert_handler.assert_not_awaited()
        assert await tracker.within_budget(TENANT, limits, BudgetLimitKind.DAILY_EXECUTIONS) is True

    @pytest.mark.asyncio
    async def test_unset_enforcement_defaults_to_soft(self, tracker, alert_handler):
        limits = TenantBudgetLimits(daily_execution_limit=1, inherit_global_defaults=False)
        await tracker.record_execution(TENANT, limits)

        await tracker.check_budget(TENANT, limits)
        assert alert_handler.await_args.args[0] is AlertEvent.BUDGET_SOFT_CAP


class TestGlobalDefaults:
    @pytest.mark.asyncio
    async def test_tenant_inherits_unset_values(self, memory_store, today):
        tracker = BudgetTracker(
            memory_store,
            defaults=TenantBudgetLimits(
                enforcement=EnforcementMode.HARD,
                daily_execution_limit=1,
                inherit_global_defaults=False,
            ),
            today=today,
            metrics_enabled=False,
        )
        limits = TenantBudgetLimits(daily_cost_limit=Decimal("100"))
        await tracker.record_execution(TENANT, limits)

        with pytest.raises(BudgetExceeded) as exc_info:
            await tracker.check_budget(TENANT, limits)
        assert exc_info.value.limit_kind is BudgetLimitKind.DAILY_EXECUTIONS

    @pytest.mark.asyncio
    async def test_no_inheritance_keeps_limits_unset(self, memory_store, today):
        tracker = BudgetTracker(
            memory_store,
            defaults=hard(daily_execution_limit=1),
            today=today,
            metrics_enabled=False,
        )
        limits = TenantBudgetLimits(enforcement=EnforcementMode.HARD, inherit_global_defaults=False)
        await tracker.record_execution(TENANT, limits)

        await tracker.check_budget(TENANT, limits)

    @pytest.mark.asyncio
    async def test_no_limits_uses_defaults(self, memory_store, today):
        tracker = BudgetTracker(memory_store, defaults=hard(daily_execution_limit=1), today=today, metrics_enabled=False)
        await tracker.record_execution(TENANT)

        with pytest.raises(BudgetExceeded):
            await tracker.check_budget(TENANT)


class TestRecording:
    @pytest.mark.asyncio
    async def test_increments_all_counters(self, tracker):
        await tracker.record_execution(TENANT, cost=Decimal("0.25"), tokens=120)
        snapshot = await tracker.record_execution(TENANT, cost=Decimal("0.5"), tokens=30, error=True)

        assert snapshot.daily_cost_spent == Decimal("0.75")
        assert snapshot.monthly_cost_spent == Decimal("0.75")
        assert snapshot.daily_tokens_used == 150
        assert snapshot.monthly_tokens_used == 150
        assert snapshot.daily_executions_count == 2
        assert snapshot.monthly_executions_count == 2
        assert snapshot.daily_error_count == 1
        assert snapshot.monthly_error_count == 1
        assert snapshot.last_execution_status == "error"
        assert snapshot.last_execution_at is not None

    @pytest.mark.asyncio
    async def test_custom_status(self, tracker):
        snapshot = await tracker.record_execution(TENANT, error=True, status="timeout")
        assert snapshot.last_execution_status == "timeout"

    @pytest.mark.asyncio
    async def test_concurrent_increments_not_lost(self, tracker):
        await asyncio.gather(
            *(tracker.record_execution(TENANT, cost=Decimal("0.1"), tokens=1) for _ in range(50))
        )

        snapshot = await tracker.counters(TENANT)
        assert snapshot.daily_executions_count == 50
        assert snapshot.daily_tokens_used == 50
        assert snapshot.daily_cost_spent == Decimal("5.0")


class TestRollover:
    @pytest.mark.asyncio
    async def test_first_touch_stamps_reset_dates(self, tracker, memory_store):
        await tracker.record_execution(TENANT)
        raw = await memory_store.read(tracker.storage_key(TENANT))

        assert raw[DAILY_RESET_DATE] == "2026-03-14"
        assert raw[MONTHLY_RESET_DATE] == "2026-03-01"

    @pytest.mark.asyncio
    async def test_second_reset_same_day_is_noop(self, tracker, memory_store):
        assert await tracker.ensure_daily_reset(TENANT) is True
        await tracker.record_execution(TENANT, cost=Decimal("2"))

        assert await tracker.ensure_daily_reset(TENANT) is False
        raw = await memory_store.read(tracker.storage_key(TENANT))
        assert Decimal(raw[DAILY_COST]) == Decimal("2")
        assert raw[DAILY_EXECUTIONS] == "1"

    @pytest.mark.asyncio
    async def test_new_day_zeroes_daily_only(self, tracker, today):
        await tracker.record_execution(TENANT, cost=Decimal("3"), tokens=10)
        today.value = date(2026, 3, 15)

        snapshot = await tracker.counters(TENANT)

        assert snapshot.daily_cost_spent == Decimal("0")
        assert snapshot.daily_executions_count == 0
        assert snapshot.monthly_cost_spent == Decimal("3")
        assert snapshot.monthly_tokens_used == 10
        assert snapshot.daily_reset_date == date(2026, 3, 15)

    @pytest.mark.asyncio
    async def test_new_month_zeroes_both(self, tracker, today):
        await tracker.record_execution(TENANT, cost=Decimal("3"))
        today.value = date(2026, 4, 1)

        snapshot = await tracker.counters(TENANT)

        assert snapshot.daily_cost_spent == Decimal("0")
        assert snapshot.monthly_cost_spent == Decimal("0")
        assert snapshot.monthly_reset_date == date(2026, 4, 1)

    @pytest.mark.asyncio
    async def test_new_day_unblocks_hard_limit(self, tracker, today):
        limits = hard(daily_cost_limit=Decimal("10"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("10"))
        with pytest.raises(BudgetExceeded):
            await tracker.check_budget(TENANT, limits)

        today.value = date(2026, 3, 15)
        await tracker.check_budget(TENANT, limits)

    @pytest.mark.asyncio
    async def test_concurrent_rollover_resets_once(self, tracker, today, memory_store):
        await tracker.record_execution(TENANT, cost=Decimal("1"))
        today.value = date(2026, 3, 15)

        results = await asyncio.gather(*(tracker.ensure_daily_reset(TENANT) for _ in range(5)))

        assert results.count(True) == 1
        raw = await memory_store.read(tracker.storage_key(TENANT))
        assert raw[MONTHLY_COST] == "1"


class TestQueries:
    @pytest.mark.asyncio
    async def test_remaining_and_within(self, tracker):
        limits = hard(daily_cost_limit=Decimal("10"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("4"))

        assert await tracker.remaining_budget(TENANT, limits) == Decimal("6")
        assert await tracker.within_budget(TENANT, limits) is True
        assert await tracker.remaining_budget(TENANT, limits, BudgetLimitKind.DAILY_TOKENS) is None

    @pytest.mark.asyncio
    async def test_remaining_goes_negative_when_exceeded(self, tracker):
        limits = soft(daily_cost_limit=Decimal("1"))
        await tracker.record_execution(TENANT, limits, cost=Decimal("3"))

        assert await tracker.remaining_budget(TENANT, limits) == Decimal("-2")
        assert await tracker.within_budget(TENANT, limits) is False

    @pytest.mark.asyncio
    async def test_budget_status(self, tracker):
        limits = hard(daily_cost_limit=Decimal("8"), daily_execution_limit=4)
        await tracker.record_execution(TENANT, limits, cost=Decimal("2"))

        status = await tracker.budget_status(TENANT, limits)

        assert status["enabled"] is True
        assert status["enforcement"] == "hard"
        daily_cost = status["limits"]["daily_cost"]
        assert daily_cost.limit == Decimal("8")
        assert daily_cost.remaining == Decimal("6")
        assert daily_cost.percentage_used == 25.0
        assert daily_cost.exceeded is False
        executions = status["limits"]["daily_executions"]
        assert executions.current == 1
        assert executions.percentage_used == 25.0
        monthly_tokens = status["limits"]["monthly_tokens"]
        assert monthly_tokens.limit is None
        assert monthly_tokens.percentage_used is None
