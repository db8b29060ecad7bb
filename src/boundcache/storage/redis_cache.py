from __future__ import annotations

import json
import logging
import typing as t

import redis.asyncio as redis

from ..utils.config import RedisConfig, ResilienceConfig
from ..utils.resilience import CircuitBreaker, CircuitBreakerConfig, with_retries

_logger = logging.getLogger(__name__)

T = t.TypeVar("T")


class RedisCache:
    """Async JSON cache on top of ``redis.asyncio``.

    - Values are stored as JSON strings; hash, set and sorted-set members as given
      (hash values JSON encoded).
    - Keys are used verbatim unless a ``prefix`` is given: `{prefix}:{key}`.
    - Every Redis call goes through a circuit breaker and ``with_retries``. Errors,
      including undecodable payloads, propagate to the caller.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        client: t.Any = None,
        prefix: str = "",
        circuit_breaker: t.Optional[CircuitBreaker] = None,
        resilience: t.Optional[ResilienceConfig] = None,
    ) -> None:
        self._url = url
        self._prefix = prefix.rstrip(":")
        self._redis = client if client is not None else redis.from_url(url, decode_responses=True)
        self._breaker = circuit_breaker or CircuitBreaker(CircuitBreakerConfig(), name=f"redis:{url}")
        self._resilience = resilience or ResilienceConfig()

    @classmethod
    def from_config(
        cls,
        config: RedisConfig,
        resilience: t.Optional[ResilienceConfig] = None,
        *,
        client: t.Any = None,
    ) -> "RedisCache":
        resilience = resilience or ResilienceConfig()
        breaker = None
        if resilience.circuit_breaker_enabled:
            breaker = CircuitBreaker(CircuitBreakerConfig.from_resilience(resilience), name=f"redis:{config.url}")
        else:
            # threshold that is never reached
            breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=2**31), name=f"redis:{config.url}")
        return cls(
            config.url,
            client=client,
            prefix=config.prefix,
            circuit_breaker=breaker,
            resilience=resilience,
        )

    @property
    def client(self) -> t.Any:
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    def _strip(self, key: str) -> str:
        if self._prefix and key.startswith(f"{self._prefix}:"):
            return key[len(self._prefix) + 1 :]
        return key

    async def _call(self, op: t.Callable[[], t.Awaitable[T]]) -> T:
        return await self._breaker.run(lambda: with_retries(op, self._resilience))

    @staticmethod
    def _dumps(value: t.Any) -> str:
        return json.dumps(value)

    @staticmethod
    def _loads(raw: t.Any) -> t.Any:
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode()
        return json.loads(raw)

    # Basic operations

    async def get(self, key: str) -> t.Any:
        raw = await self._call(lambda: self._redis.get(self._key(key)))
        return self._loads(raw)

    async def set(self, key: str, value: t.Any, ttl: t.Optional[int] = None) -> None:
        """Store ``value``; ``ttl`` is in seconds, ``None`` for no expiry.

        A ``ttl`` of zero or less deletes the key, since the value would already
        be expired.
        """
        if ttl is not None and ttl <= 0:
            await self.delete(key)
            return
        payload = self._dumps(value)
        if ttl is None:
            await self._call(lambda: self._redis.set(self._key(key), payload))
        else:
            await self._call(lambda: self._redis.set(self._key(key), payload, ex=ttl))

    async def delete(self, key: str) -> bool:
        removed = await self._call(lambda: self._redis.delete(self._key(key)))
        return bool(removed)

    async def exists(self, key: str) -> bool:
        count = await self._call(lambda: self._redis.exists(self._key(key)))
        return bool(count)

    # TTL operations

    async def get_ttl(self, key: str) -> int:
        """Seconds remaining; -1 when the key has no expiry, -2 when it does not exist."""
        return await self._call(lambda: self._redis.ttl(self._key(key)))

    async def expire(self, key: str, ttl: int) -> bool:
        ok = await self._call(lambda: self._redis.expire(self._key(key), ttl))
        return bool(ok)

    # Batch operations

    async def mget(self, keys: t.Sequence[str]) -> t.List[t.Any]:
        if not keys:
            return []
        raws = await self._call(lambda: self._redis.mget([self._key(k) for k in keys]))
        return [self._loads(raw) for raw in raws]

    async def mset(self, mapping: t.Mapping[str, t.Any]) -> None:
        if not mapping:
            return
        payload = {self._key(k): self._dumps(v) for k, v in mapping.items()}
        await self._call(lambda: self._redis.mset(payload))

    # Counters

    async def increment(self, key: str, amount: int = 1) -> int:
        if amount == 1:
            return await self._call(lambda: self._redis.incr(self._key(key)))
        return await self._call(lambda: self._redis.incrby(self._key(key), amount))

    async def decrement(self, key: str, amount: int = 1) -> int:
        if amount == 1:
            return await self._call(lambda: self._redis.decr(self._key(key)))
        return await self._call(lambda: self._redis.decrby(self._key(key), amount))

    # Hashes

    async def hset(self, key: str, field: str, value: t.Any) -> None:
        payload = self._dumps(value)
        await self._call(lambda: self._redis.hset(self._key(key), field, payload))

    async def hget(self, key: str, field: str) -> t.Any:
        raw = await self._call(lambda: self._redis.hget(self._key(key), field))
        return self._loads(raw)

    async def hdel(self, key: str, field: str) -> bool:
        removed = await self._call(lambda: self._redis.hdel(self._key(key), field))
        return bool(removed)

    async def hgetall(self, key: str) -> t.Dict[str, t.Any]:
        raw = await self._call(lambda: self._redis.hgetall(self._key(key)))
        return {field: self._loads(value) for field, value in (raw or {}).items()}

    # Sets

    async def sadd(self, key: str, *members: str) -> int:
        return await self._call(lambda: self._redis.sadd(self._key(key), *members))

    async def smembers(self, key: str) -> t.List[str]:
        members = await self._call(lambda: self._redis.smembers(self._key(key)))
        return list(members or [])

    async def srem(self, key: str, *members: str) -> int:
        return await self._call(lambda: self._redis.srem(self._key(key), *members))

    # Sorted sets

    async def zadd(self, key: str, score: float, member: str) -> int:
        return await self._call(lambda: self._redis.zadd(self._key(key), {member: score}))

    async def zrange(self, key: str, start: int = 0, end: int = -1) -> t.List[str]:
        members = await self._call(lambda: self._redis.zrange(self._key(key), start, end))
        return list(members or [])

    async def zrem(self, key: str, *members: str) -> int:
        return await self._call(lambda: self._redis.zrem(self._key(key), *members))

    # Keyspace

    async def keys(self, pattern: str = "*") -> t.List[str]:
        found = await self._call(lambda: self._redis.keys(self._key(pattern)))
        return [self._strip(k.decode() if isinstance(k, (bytes, bytearray)) else k) for k in found or []]

    async def flush(self) -> None:
        """Flush the whole Redis database, regardless of ``prefix``."""
        await self._call(lambda: self._redis.flushdb())

    async def is_healthy(self) -> bool:
        try:
            pong = await self._redis.ping()
            return bool(pong)
        except Exception:
            _logger.warning("Redis health check failed for %s", self._url, exc_info=True)
            return False

    async def disconnect(self) -> None:
        await self._redis.aclose()


_clients: t.Dict[str, RedisCache] = {}


def get_redis_client(name: str = "default", url: str = "redis://localhost:6379/0", **kwargs: t.Any) -> RedisCache:
    """Return the named shared ``RedisCache``, creating it on first use."""
    cache = _clients.get(name)
    if cache is None:
        cache = RedisCache(url, **kwargs)
        _clients[name] = cache
    return cache


async def close_all_redis_clients() -> None:
    clients = list(_clients.values())
    _clients.clear()
    for cache in clients:
        try:
            await cache.disconnect()
        except Exception:
            _logger.warning("Failed to close redis client", exc_info=True)
