"""Shared fixtures and mocks for unit tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from boundcache.cache.memory import MemoryCache
from boundcache.monitoring import metrics


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty process-wide metrics."""
    metrics.reset_all()
    yield
    metrics.reset_all()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_cache(clock):
    """Factory for caches driven by the fake clock."""

    def factory(**kwargs) -> MemoryCache:
        kwargs.setdefault("clock", clock)
        return MemoryCache(**kwargs)

    return factory


@pytest.fixture
def mock_redis():
    """Mock redis.asyncio client."""
    client = AsyncMock()
    for name in (
        "get",
        "set",
        "delete",
        "exists",
        "ttl",
        "expire",
        "keys",
        "flushdb",
        "mget",
        "mset",
        "incr",
        "incrby",
        "decr",
        "decrby",
        "hget",
        "hset",
        "hdel",
        "hgetall",
        "sadd",
        "smembers",
        "srem",
        "zadd",
        "zrange",
        "zrem",
        "ping",
        "aclose",
    ):
        setattr(client, name, AsyncMock())
    return client
