"""
Redis-backed counter store.

Storage layout: one Redis hash per key (string fields, decode_responses).
- Increments run in a MULTI/EXEC pipeline (HINCRBY / HINCRBYFLOAT / HSET
  followed by HGETALL), so all deltas of one call land together.
- Non-integer deltas (cost) go through HINCRBYFLOAT: Redis adds them as long
  double and stores 17 significant digits, so cost counters are precise to
  that many digits rather than Decimal-exact like InMemoryCounterStore.
- Guarded resets run as a Lua script, so the guard check and the write are
  a single atomic step across every process sharing the Redis instance.

Any redis.RedisError is wrapped in CounterStoreError.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from reliability_layer.config import Settings
from reliability_layer.persistence.counter_store import (
    CounterStore,
    CounterStoreError,
    Delta,
    ResetGuard,
    format_value,
    is_integral,
)
from reliability_layer.persistence.redis_client import RedisClient

logger = structlog.get_logger(__name__)

# KEYS[1] = hash key
# ARGV[1] = guard field ('' for unconditional), ARGV[2] = guard bound,
# ARGV[3] = '1' numeric / '0' lexicographic comparison,
# ARGV[4] = '1' when a stored value equal to the bound still resets,
# ARGV[5..] = field, value pairs ('' value deletes the field)
_CONDITIONAL_RESET_SCRIPT = """
local guard_field = ARGV[1]
if guard_field ~= '' then
    local current = redis.call('HGET', KEYS[1], guard_field)
    if current and current ~= '' then
        local stored, bound = current, ARGV[2]
        if ARGV[3] == '1' then
            stored, bound = tonumber(current), tonumber(ARGV[2])
        end
        if stored > bound or (stored == bound and ARGV[4] ~= '1') then
            return 0
        end
    end
end
for i = 5, #ARGV, 2 do
    if ARGV[i + 1] == '' then
        redis.call('HDEL', KEYS[1], ARGV[i])
    else
        redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
    end
end
return 1
"""


class RedisCounterStore(CounterStore):
    """
    Counter store shared across processes through Redis.

    Args:
        redis: redis.asyncio client created with decode_responses=True
    """

    def __init__(self, redis: AsyncRedis):
        self._redis = redis

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCounterStore":
        """Build a store on the shared connection pool."""
        return cls(RedisClient.get_async_client(settings))

    async def read(self, key: str) -> dict[str, str]:
        try:
            return dict(await self._redis.hgetall(key))
        except RedisError as e:
            raise self._wrap("read", key, e) from e

    async def atomic_increment(
        self,
        key: str,
        fields: Mapping[str, Delta],
        set_fields: Optional[Mapping[str, object]] = None,
    ) -> dict[str, str]:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for name, delta in fields.items():
                    if is_integral(delta):
                        pipe.hincrby(key, name, delta)
                    else:
                        pipe.hincrbyfloat(key, name, float(Decimal(str(delta))))
                if set_fields:
                    pipe.hset(
                        key,
                        mapping={name: format_value(value) for name, value in set_fields.items()},
                    )
                pipe.hgetall(key)
                results = await pipe.execute()
        except RedisError as e:
            raise self._wrap("atomic_increment", key, e) from e
        return dict(results[-1])

    async def conditional_reset(
        self,
        key: str,
        guard: Optional[ResetGuard],
        reset_fields: Mapping[str, object],
    ) -> bool:
        args: list[str] = []
        if guard is None:
            args.extend(["", "", "0", "0"])
        else:
            args.extend(
                [
                    guard.field,
                    format_value(guard.before),
                    "1" if guard.numeric else "0",
                    "1" if guard.inclusive else "0",
                ]
            )
        for name, value in reset_fields.items():
            args.extend([name, format_value(value)])

        try:
            applied = await self._redis.eval(_CONDITIONAL_RESET_SCRIPT, 1, key, *args)
        except RedisError as e:
            raise self._wrap("conditional_reset", key, e) from e
        return bool(int(applied))

    async def clear(self, key: str, fields: Optional[Iterable[str]] = None) -> None:
        try:
            if fields is None:
                await self._redis.delete(key)
                return
            names = list(fields)
            if names:
                await self._redis.hdel(key, *names)
        except RedisError as e:
            raise self._wrap("clear", key, e) from e

    async def close(self) -> None:
        await self._redis.aclose()

    @staticmethod
    def _wrap(operation: str, key: str, error: RedisError) -> CounterStoreError:
        logger.error(
            "Redis counter store operation failed",
            operation=operation,
            key=key,
            error_type=type(error).__name__,
            error=str(error),
        )
        return CounterStoreError(
            f"Redis {operation} failed for {key}: {error}",
            {"operation": operation, "key": key, "error_type": type(error).__name__},
        )
