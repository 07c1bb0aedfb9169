"""
Budget Tracker: per-tenant cost/token/execution counters and enforcement.

Counters live in one counter-store hash per tenant. Rules:
- Counters are only valid for the window their reset date names. Before
  any read or write, a stale window is zeroed lazily with a guarded
  conditional reset (WHERE reset_date < current window start), so only
  the first of several concurrent callers performs it.
- Recording an execution is a single store-applied increment of all eight
  counters, never a read-modify-write in this process.

Enforcement modes:
- none: no checks, no alerts (counters are still recorded)
- soft: never blocks; after recording, alerts once per limit and window
  when a limit is reached (the first caller to claim the alert sends it)
- hard: check_budget() raises BudgetExceeded before any model call
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog

from reliability_layer.models.budget import (
    DAILY_COST,
    DAILY_COUNTER_FIELDS,
    DAILY_ERRORS,
    DAILY_EXECUTIONS,
    DAILY_RESET_DATE,
    DAILY_TOKENS,
    LAST_EXECUTION_AT,
    LAST_EXECUTION_STATUS,
    MONTHLY_COST,
    MONTHLY_COUNTER_FIELDS,
    MONTHLY_ERRORS,
    MONTHLY_EXECUTIONS,
    MONTHLY_RESET_DATE,
    MONTHLY_TOKENS,
    Amount,
    BudgetStatus,
    TenantBudgetCounters,
    TenantBudgetLimits,
    alerted_field,
)
from reliability_layer.models.enums import AlertEvent, BudgetLimitKind, EnforcementMode
from reliability_layer.monitoring import metrics
from reliability_layer.monitoring.alerts import AlertManager
from reliability_layer.persistence.counter_store import CounterStore, ResetGuard
from reliability_layer.retry.exceptions import BudgetExceeded

logger = structlog.get_logger(__name__)

# Pre-check order: first breached limit wins
CHECK_ORDER: tuple[BudgetLimitKind, ...] = (
    BudgetLimitKind.DAILY_COST,
    BudgetLimitKind.MONTHLY_COST,
    BudgetLimitKind.DAILY_TOKENS,
    BudgetLimitKind.MONTHLY_TOKENS,
    BudgetLimitKind.DAILY_EXECUTIONS,
    BudgetLimitKind.MONTHLY_EXECUTIONS,
)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hard_event(kind: BudgetLimitKind) -> AlertEvent:
    return AlertEvent.TOKEN_HARD_CAP if kind.dimension == "tokens" else AlertEvent.BUDGET_HARD_CAP


def _soft_event(kind: BudgetLimitKind) -> AlertEvent:
    return AlertEvent.TOKEN_SOFT_CAP if kind.dimension == "tokens" else AlertEvent.BUDGET_SOFT_CAP


class BudgetTracker:
    """
    Tenant budget accounting over a shared counter store.

    Attributes:
        store: Counter store holding one hash per tenant
        defaults: Global default limits inherited by tenants, or None
        alert_manager: Receives soft/hard cap alerts, or None
        key_prefix: Namespace prepended to every storage key
    """

    def __init__(
        self,
        store: CounterStore,
        defaults: Optional[TenantBudgetLimits] = None,
        alert_manager: Optional[AlertManager] = None,
        today: Callable[[], date] = utc_today,
        now: Callable[[], datetime] = _utcnow,
        key_prefix: str = "reliability",
        metrics_enabled: bool = True,
    ):
        self.store = store
        self.defaults = defaults
        self.alert_manager = alert_manager
        self.key_prefix = key_prefix
        self._today = today
        self._now = now
        self._metrics_enabled = metrics_enabled

    def storage_key(self, tenant_id: str) -> str:
        return f"{self.key_prefix}:tenant:{tenant_id}:budget"

    def effective_limits(self, limits: Optional[TenantBudgetLimits]) -> TenantBudgetLimits:
        """Tenant limits with global defaults filled in."""
        if limits is None:
            return self.defaults or TenantBudgetLimits(enforcement=EnforcementMode.NONE)
        return limits.resolve(self.defaults)

    # ------------------------------------------------------------------
    # Window rollover
    # ------------------------------------------------------------------

    async def ensure_daily_reset(self, tenant_id: str) -> bool:
        """Zero daily counters if their window is stale. True if applied."""
        today = self._today()
        applied = await self.store.conditional_reset(
            self.storage_key(tenant_id),
            ResetGuard(DAILY_RESET_DATE, today.isoformat()),
            {**{name: 0 for name in DAILY_COUNTER_FIELDS}, DAILY_RESET_DATE: today},
        )
        if applied:
            logger.debug("Daily budget window reset", tenant_id=tenant_id, reset_date=today.isoformat())
        return applied

    async def ensure_monthly_reset(self, tenant_id: str) -> bool:
        """Zero monthly counters if their window is stale. True if applied."""
        month_start = self._today().replace(day=1)
        applied = await self.store.conditional_reset(
            self.storage_key(tenant_id),
            ResetGuard(MONTHLY_RESET_DATE, month_start.isoformat()),
            {**{name: 0 for name in MONTHLY_COUNTER_FIELDS}, MONTHLY_RESET_DATE: month_start},
        )
        if applied:
            logger.debug(
                "Monthly budget window reset", tenant_id=tenant_id, reset_date=month_start.isoformat()
            )
        return applied

    async def counters(self, tenant_id: str) -> TenantBudgetCounters:
        """Current-window counters (stale windows are reset first)."""
        await self.ensure_daily_reset(tenant_id)
        await self.ensure_monthly_reset(tenant_id)
        raw = await self.store.read(self.storage_key(tenant_id))
        return TenantBudgetCounters.from_store(tenant_id, raw)

    # ------------------------------------------------------------------
    # Enforcement
    # ------------------------------------------------------------------

    async def check_budget(self, tenant_id: str, limits: Optional[TenantBudgetLimits] = None) -> None:
        """
        Hard-mode pre-check; no-op in soft and none modes.

        Raises:
            BudgetExceeded: First limit (in CHECK_ORDER) with current >= limit
        """
        effective = self.effective_limits(limits)
        if effective.effective_enforcement is not EnforcementMode.HARD:
            return

        snapshot = await self.counters(tenant_id)
        for kind in CHECK_ORDER:
            limit = effective.limit_for(kind)
            if limit is None:
                continue
            current = snapshot.current_for(kind)
            if current >= limit:
                logger.warning(
                    "Budget exceeded, call rejected",
                    tenant_id=tenant_id,
                    limit_kind=kind.value,
                    limit=str(limit),
                    current=str(current),
                )
                if self._metrics_enabled:
                    metrics.budget_rejections_total.labels(limit_kind=kind.value).inc()
                await self._alert(_hard_event(kind), tenant_id, kind, limit, current)
                raise BudgetExceeded(tenant_id=tenant_id, limit_kind=kind, limit=limit, current=current)

    async def record_execution(
        self,
        tenant_id: str,
        limits: Optional[TenantBudgetLimits] = None,
        *,
        cost: Decimal = Decimal("0"),
        tokens: int = 0,
        error: bool = False,
        status: Optional[str] = None,
    ) -> TenantBudgetCounters:
        """
        Atomically add one execution to every counter, then check soft caps.

        Args:
            tenant_id: Tenant to charge
            limits: Tenant limits (for soft-cap alerts)
            cost: Spend of this execution
            tokens: Tokens consumed (input + output)
            error: Whether the execution failed
            status: Stored as last_execution_status (defaults to success/error)

        Returns:
            Counters after the increment
        """
        await self.ensure_daily_reset(tenant_id)
        await self.ensure_monthly_reset(tenant_id)

        error_delta = 1 if error else 0
        record = await self.store.atomic_increment(
            self.storage_key(tenant_id),
            {
                DAILY_COST: cost,
                MONTHLY_COST: cost,
                DAILY_TOKENS: tokens,
                MONTHLY_TOKENS: tokens,
                DAILY_EXECUTIONS: 1,
                MONTHLY_EXECUTIONS: 1,
                DAILY_ERRORS: error_delta,
                MONTHLY_ERRORS: error_delta,
            },
            set_fields={
                LAST_EXECUTION_AT: self._now(),
                LAST_EXECUTION_STATUS: status or ("error" if error else "success"),
            },
        )
        snapshot = TenantBudgetCounters.from_store(tenant_id, record)

        logger.debug(
            "Execution recorded",
            tenant_id=tenant_id,
            cost=str(cost),
            tokens=tokens,
            error=error,
            daily_cost_spent=str(snapshot.daily_cost_spent),
            daily_executions=snapshot.daily_executions_count,
        )

        effective = self.effective_limits(limits)
        if effective.effective_enforcement is EnforcementMode.SOFT:
            await self._check_soft_caps(tenant_id, effective, snapshot)
        return snapshot

    async def _check_soft_caps(
        self, tenant_id: str, limits: TenantBudgetLimits, snapshot: TenantBudgetCounters
    ) -> None:
        for kind in CHECK_ORDER:
            limit = limits.limit_for(kind)
            if limit is None:
                continue
            current = snapshot.current_for(kind)
            if current < limit:
                continue
            if not await self._claim_soft_alert(tenant_id, kind):
                continue
            logger.info(
                "Soft budget cap reached",
                tenant_id=tenant_id,
                limit_kind=kind.value,
                limit=str(limit),
                current=str(current),
            )
            await self._alert(_soft_event(kind), tenant_id, kind, limit, current)

    async def _claim_soft_alert(self, tenant_id: str, kind: BudgetLimitKind) -> bool:
        """
        Mark the soft-cap alert for `kind` as sent in the current window.

        Only the first caller per (tenant, limit kind, window) gets True.
        """
        window_start = self._window_start(kind)
        return await self.store.conditional_reset(
            self.storage_key(tenant_id),
            ResetGuard(alerted_field(kind), window_start.isoformat()),
            {alerted_field(kind): window_start},
        )

    def _window_start(self, kind: BudgetLimitKind) -> date:
        today = self._today()
        return today if kind.is_daily else today.replace(day=1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def within_budget(
        self,
        tenant_id: str,
        limits: Optional[TenantBudgetLimits] = None,
        kind: BudgetLimitKind = BudgetLimitKind.DAILY_COST,
    ) -> bool:
        effective = self.effective_limits(limits)
        if effective.effective_enforcement is EnforcementMode.NONE:
            return True
        limit = effective.limit_for(kind)
        if limit is None:
            return True
        snapshot = await self.counters(tenant_id)
        return snapshot.current_for(kind) < limit

    async def remaining_budget(
        self,
        tenant_id: str,
        limits: Optional[TenantBudgetLimits] = None,
        kind: BudgetLimitKind = BudgetLimitKind.DAILY_COST,
    ) -> Optional[Amount]:
        """limit - current (may be negative once exceeded), or None if unlimited."""
        limit = self.effective_limits(limits).limit_for(kind)
        if limit is None:
            return None
        snapshot = await self.counters(tenant_id)
        return limit - snapshot.current_for(kind)

    async def budget_status(
        self, tenant_id: str, limits: Optional[TenantBudgetLimits] = None
    ) -> dict[str, Any]:
        effective = self.effective_limits(limits)
        snapshot = await self.counters(tenant_id)
        return {
            "tenant_id": tenant_id,
            "enabled": effective.effective_enforcement is not EnforcementMode.NONE,
            "enforcement": effective.effective_enforcement.value,
            "limits": {
                kind.value: self._status_for(kind, effective.limit_for(kind), snapshot.current_for(kind))
                for kind in CHECK_ORDER
            },
            "daily_error_count": snapshot.daily_error_count,
            "monthly_error_count": snapshot.monthly_error_count,
            "last_execution_at": snapshot.last_execution_at.isoformat() if snapshot.last_execution_at else None,
            "last_execution_status": snapshot.last_execution_status,
        }

    @staticmethod
    def _status_for(kind: BudgetLimitKind, limit: Optional[Amount], current: Amount) -> BudgetStatus:
        if limit is None:
            return BudgetStatus(kind=kind, current=current)
        percentage = round(float(current) / float(limit) * 100, 1) if limit else 100.0
        return BudgetStatus(
            kind=kind,
            limit=limit,
            current=current,
            remaining=max(limit - current, 0),
            percentage_used=percentage,
        )

    async def _alert(
        self,
        event: AlertEvent,
        tenant_id: str,
        kind: BudgetLimitKind,
        limit: Amount,
        current: Amount,
    ) -> None:
        if self.alert_manager is None:
            return
        await self.alert_manager.notify(
            event,
            {
                "tenant_id": tenant_id,
                "limit_kind": kind.value,
                "limit": str(limit),
                "current": str(current),
            },
        )
