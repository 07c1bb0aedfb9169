"""
Circuit Breaker keyed by (agent_type, model_id, tenant_id).

State lives entirely in the counter store (no in-process caching), one
hash per key with fields:
- failure_count: failures in the current window
- window_start:  epoch seconds the current window started
- opened_at:     epoch seconds the breaker last opened (absent when closed)

Transitions:
- closed -> open:      failure_count >= threshold within window
- open -> half-open:   implicit once now >= opened_at + cooldown; is_open()
                       is a pure read and simply starts returning False
- half-open -> closed: record_success() on the trial call (a success while still
                       open only clears the failure window)
- half-open -> open:   record_failure() on the trial call re-stamps opened_at

Every write is a store-applied increment or a guarded conditional reset, so
concurrent callers converge: only the first caller observing a stale window
resets it, and only the first caller crossing the threshold opens it.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from reliability_layer.models.enums import AlertEvent, BreakerStatus
from reliability_layer.models.policy import CircuitBreakerPolicy
from reliability_layer.monitoring import metrics
from reliability_layer.monitoring.alerts import AlertManager
from reliability_layer.persistence.counter_store import CounterStore, ResetGuard

logger = structlog.get_logger(__name__)

FAILURE_COUNT = "failure_count"
WINDOW_START = "window_start"
OPENED_AT = "opened_at"


@dataclass(frozen=True)
class BreakerKey:
    agent_type: str
    model_id: str
    tenant_id: Optional[str] = None

    def storage_key(self, prefix: str) -> str:
        return f"{prefix}:cb:{self.tenant_id or 'global'}:{self.agent_type}:{self.model_id}"


@dataclass(frozen=True)
class CircuitBreakerState:
    """Snapshot of one breaker as read from the store."""

    key: BreakerKey
    failure_count: int
    window_start: Optional[float]
    opened_at: Optional[float]
    status: BreakerStatus


def _float(raw: Optional[str]) -> Optional[float]:
    return float(raw) if raw else None


class CircuitBreaker:
    """
    Failure-windowed circuit breaker over a shared counter store.

    Attributes:
        store: Counter store holding breaker hashes
        policy: Threshold, window and cooldown
        key_prefix: Namespace prepended to every storage key
    """

    def __init__(
        self,
        store: CounterStore,
        policy: CircuitBreakerPolicy,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], float] = time.time,
        key_prefix: str = "reliability",
        metrics_enabled: bool = True,
    ):
        self.store = store
        self.policy = policy
        self.alert_manager = alert_manager
        self.key_prefix = key_prefix
        self._clock = clock
        self._metrics_enabled = metrics_enabled

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def state(self, key: BreakerKey) -> CircuitBreakerState:
        raw = await self.store.read(key.storage_key(self.key_prefix))
        opened_at = _float(raw.get(OPENED_AT))
        if opened_at is None:
            status = BreakerStatus.CLOSED
        elif self._clock() < opened_at + self.policy.cooldown:
            status = BreakerStatus.OPEN
        else:
            status = BreakerStatus.HALF_OPEN
        return CircuitBreakerState(
            key=key,
            failure_count=int(raw.get(FAILURE_COUNT) or 0),
            window_start=_float(raw.get(WINDOW_START)),
            opened_at=opened_at,
            status=status,
        )

    async def is_open(self, key: BreakerKey) -> bool:
        """True while the cooldown runs. Never writes."""
        return (await self.state(key)).status is BreakerStatus.OPEN

    async def failure_count(self, key: BreakerKey) -> int:
        return (await self.state(key)).failure_count

    async def time_until_close(self, key: BreakerKey) -> float:
        """Seconds until the next trial call is allowed (0.0 if not open)."""
        current = await self.state(key)
        if current.status is not BreakerStatus.OPEN or current.opened_at is None:
            return 0.0
        return max(0.0, current.opened_at + self.policy.cooldown - self._clock())

    async def status(self, key: BreakerKey) -> dict[str, Any]:
        current = await self.state(key)
        return {
            "agent_type": key.agent_type,
            "model_id": key.model_id,
            "tenant_id": key.tenant_id,
            "state": current.status.value,
            "open": current.status is BreakerStatus.OPEN,
            "failure_count": current.failure_count,
            "time_until_close": await self.time_until_close(key),
            "thresholds": {
                "errors": self.policy.failure_threshold,
                "within": self.policy.window,
                "cooldown": self.policy.cooldown,
            },
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_failure(self, key: BreakerKey) -> bool:
        """
        Count one failure; open the breaker when the threshold is reached.

        Returns:
            True if this call opened (or re-opened) the breaker
        """
        storage_key = key.storage_key(self.key_prefix)
        now = self._clock()

        await self.store.conditional_reset(
            storage_key,
            ResetGuard(WINDOW_START, now - self.policy.window, numeric=True, inclusive=True),
            {FAILURE_COUNT: 0, WINDOW_START: now},
        )
        record = await self.store.atomic_increment(storage_key, {FAILURE_COUNT: 1})
        count = int(record.get(FAILURE_COUNT) or 0)
        opened_at = _float(record.get(OPENED_AT))
        half_open_trial = opened_at is not None and now >= opened_at + self.policy.cooldown

        logger.debug(
            "Circuit breaker failure recorded",
            agent_type=key.agent_type,
            model_id=key.model_id,
            tenant_id=key.tenant_id,
            failure_count=count,
            threshold=self.policy.failure_threshold,
        )

        if count < self.policy.failure_threshold and not half_open_trial:
            return False

        opened = await self.store.conditional_reset(
            storage_key,
            ResetGuard(OPENED_AT, now - self.policy.cooldown, numeric=True, inclusive=True),
            {OPENED_AT: now},
        )
        if opened:
            self._on_open(key, count, reopened=half_open_trial)
            await self._alert(
                AlertEvent.BREAKER_OPEN,
                key,
                failure_count=count,
                cooldown=self.policy.cooldown,
            )
        return opened

    async def record_success(self, key: BreakerKey) -> None:
        """
        Reset the failure window; close the breaker if a half-open trial call succeeded.

        A success while the cooldown still runs (a call already in flight when
        the breaker tripped) keeps opened_at, so the breaker stays open.
        """
        storage_key = key.storage_key(self.key_prefix)
        current = await self.state(key)

        if current.status is not BreakerStatus.HALF_OPEN:
            if current.failure_count or current.window_start is not None:
                await self.store.clear(storage_key, [FAILURE_COUNT, WINDOW_START])
            return

        await self.store.clear(storage_key, [FAILURE_COUNT, WINDOW_START, OPENED_AT])
        logger.info(
            "Circuit breaker closed",
            agent_type=key.agent_type,
            model_id=key.model_id,
            tenant_id=key.tenant_id,
        )
        if self._metrics_enabled:
            metrics.circuit_breaker_transitions_total.labels(
                model=key.model_id, state=BreakerStatus.CLOSED.value
            ).inc()
        await self._alert(AlertEvent.BREAKER_CLOSED, key)

    async def reset(self, key: BreakerKey) -> None:
        """Manually clear all state for `key`."""
        await self.store.clear(key.storage_key(self.key_prefix))
        logger.info(
            "Circuit breaker reset",
            agent_type=key.agent_type,
            model_id=key.model_id,
            tenant_id=key.tenant_id,
        )

    def _on_open(self, key: BreakerKey, count: int, reopened: bool) -> None:
        logger.warning(
            "Circuit breaker opened",
            agent_type=key.agent_type,
            model_id=key.model_id,
            tenant_id=key.tenant_id,
            failure_count=count,
            cooldown=self.policy.cooldown,
            half_open_trial_failed=reopened,
        )
        if self._metrics_enabled:
            metrics.circuit_breaker_transitions_total.labels(
                model=key.model_id, state=BreakerStatus.OPEN.value
            ).inc()

    async def _alert(self, event: AlertEvent, key: BreakerKey, **extra: Any) -> None:
        if self.alert_manager is None:
            return
        await self.alert_manager.notify(
            event,
            {
                "agent_type": key.agent_type,
                "model_id": key.model_id,
                "tenant_id": key.tenant_id,
                **extra,
            },
        )
