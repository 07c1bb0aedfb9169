"""
Total-Timeout Guard.

One guard per logical call, started when the call enters the orchestrator.
It is checked before every attempt, caps every backoff sleep to the time
left, and bounds the model call itself with asyncio.wait_for. A guard
without a timeout never expires.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from reliability_layer.retry.exceptions import TotalTimeoutExceeded

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TotalTimeoutGuard:
    """
    Wall-clock budget spanning all attempts and models of one call.

    Attributes:
        total_timeout: Budget in seconds, or None for unbounded
        started_at: Clock reading at construction
    """

    def __init__(
        self,
        total_timeout: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total_timeout = total_timeout
        self._clock = clock
        self.started_at = clock()

    @property
    def enabled(self) -> bool:
        return self.total_timeout is not None

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def remaining(self) -> Optional[float]:
        """Seconds left (never negative), or None when unbounded."""
        if self.total_timeout is None:
            return None
        return max(0.0, self.total_timeout - self.elapsed())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def enforce(self, model_id: Optional[str] = None) -> None:
        """
        Raise if the budget is already spent.

        Raises:
            TotalTimeoutExceeded: No time remains
        """
        if self.expired():
            raise self._exceeded(model_id)

    async def sleep(self, delay: float, model_id: Optional[str] = None) -> float:
        """
        Sleep min(delay, remaining); raise right after if nothing is left.

        Returns:
            Seconds actually slept

        Raises:
            TotalTimeoutExceeded: Budget ran out during (or before) the sleep
        """
        self.enforce(model_id)
        remaining = self.remaining()
        actual = delay if remaining is None else min(delay, remaining)
        if actual > 0:
            await asyncio.sleep(actual)
        if remaining is not None and actual >= remaining:
            raise self._exceeded(model_id)
        return actual

    async def run(self, call: Awaitable[T], model_id: Optional[str] = None) -> T:
        """
        Await `call` within the remaining budget.

        Raises:
            TotalTimeoutExceeded: Budget ran out while the call was in flight
        """
        remaining = self.remaining()
        if remaining is None:
            return await call
        if remaining <= 0.0:
            if asyncio.iscoroutine(call):
                call.close()
            raise self._exceeded(model_id)
        try:
            return await asyncio.wait_for(call, timeout=remaining)
        except asyncio.TimeoutError as e:
            if self.expired():
                raise self._exceeded(model_id) from e
            raise

    def _exceeded(self, model_id: Optional[str]) -> TotalTimeoutExceeded:
        elapsed = self.elapsed()
        logger.warning(
            "Total timeout exceeded",
            timeout=self.total_timeout,
            elapsed=round(elapsed, 3),
            model_id=model_id,
        )
        return TotalTimeoutExceeded(
            timeout=self.total_timeout or 0.0,
            elapsed=elapsed,
            model_id=model_id,
        )
