"""
Alert notification dispatcher for governance events.

Budget caps and circuit breaker transitions are reported through a
user-supplied handler (sync or async callable taking `(event, payload)`),
the structured log, the alerts_total metric and a bounded list of recent
alerts for dashboards. A failing handler is logged and never breaks the
model call that triggered the alert.

Example:
    async def to_slack(event, payload):
        await slack.post(f"{event.value}: {payload['message']}")

    alerts = AlertManager(handler=to_slack, events={AlertEvent.BUDGET_HARD_CAP})
"""

import inspect
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog

from reliability_layer.models.enums import AlertEvent
from reliability_layer.monitoring import metrics

logger = structlog.get_logger(__name__)

AlertHandler = Callable[[AlertEvent, dict[str, Any]], Union[None, Awaitable[None]]]

RECENT_ALERTS_LIMIT = 50


def format_message(event: AlertEvent, payload: dict[str, Any]) -> str:
    """Human-readable one-liner for an alert."""
    if event in (AlertEvent.BUDGET_SOFT_CAP, AlertEvent.TOKEN_SOFT_CAP):
        return f"Soft cap reached for {payload.get('limit_kind')}: {payload.get('current')} / {payload.get('limit')}"
    if event in (AlertEvent.BUDGET_HARD_CAP, AlertEvent.TOKEN_HARD_CAP):
        return f"Hard cap exceeded for {payload.get('limit_kind')}: {payload.get('current')} / {payload.get('limit')}"
    if event is AlertEvent.BREAKER_OPEN:
        return f"Circuit breaker opened for {payload.get('agent_type')}/{payload.get('model_id')}"
    if event is AlertEvent.BREAKER_CLOSED:
        return f"Circuit breaker closed for {payload.get('agent_type')}/{payload.get('model_id')}"
    return event.value.replace("_", " ").capitalize()


class AlertManager:
    """
    Dispatches alert events.

    Attributes:
        handler: Callable invoked for every enabled event, or None
        enabled: Master switch (ALERTS_ENABLED)
        events: Subset of events to dispatch (None = all)
    """

    def __init__(
        self,
        handler: Optional[AlertHandler] = None,
        enabled: bool = True,
        events: Optional[Iterable[AlertEvent]] = None,
        metrics_enabled: bool = True,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.handler = handler
        self.enabled = enabled
        self.events = frozenset(events) if events is not None else None
        self._metrics_enabled = metrics_enabled
        self._now = now
        self._recent: deque[dict[str, Any]] = deque(maxlen=RECENT_ALERTS_LIMIT)

    def wants(self, event: AlertEvent) -> bool:
        return self.enabled and (self.events is None or event in self.events)

    async def notify(self, event: AlertEvent, payload: dict[str, Any]) -> Optional[dict[str, Any]]:
        """
        Dispatch one alert.

        Returns:
            The full payload sent to the handler, or None if the event is disabled
        """
        if not self.wants(event):
            return None

        full_payload = {**payload, "event": event.value, "timestamp": self._now().isoformat()}
        full_payload["message"] = format_message(event, full_payload)

        logger.warning("Alert emitted", alert_event=event.value, **payload)
        if self._metrics_enabled:
            metrics.alerts_total.labels(event=event.value).inc()
        self._recent.appendleft(full_payload)

        if self.handler is not None:
            try:
                outcome = self.handler(event, full_payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "Alert handler failed",
                    alert_event=event.value,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
        return full_payload

    def recent(self, limit: int = RECENT_ALERTS_LIMIT) -> list[dict[str, Any]]:
        """Most recent alerts first."""
        return list(self._recent)[:limit]
