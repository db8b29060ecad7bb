"""Unit tests for MemoryCache.get_or_set and wrap."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from boundcache.monitoring import metrics


@pytest.mark.asyncio
class TestGetOrSet:
    """Test fetch-through behaviour."""

    async def test_fetches_once_then_serves_cached(self, make_cache):
        """Test the fetcher runs on a miss only."""
        cache = make_cache()
        fetcher = AsyncMock(return_value={"balance": 10})
        other = AsyncMock(return_value="unused")

        first = await cache.get_or_set("wallet:0xabc", fetcher)
        second = await cache.get_or_set("wallet:0xabc", other)

        assert first == second == {"balance": 10}
        fetcher.assert_awaited_once()
        other.assert_not_called()

    async def test_sync_fetcher(self, make_cache):
        """Test plain callables are accepted."""
        cache = make_cache()
        fetcher = Mock(return_value=5)

        assert await cache.get_or_set("key", fetcher) == 5
        assert cache.get("key") == 5

    async def test_uses_ttl(self, make_cache, clock):
        """Test the fetched value is stored with the given ttl."""
        cache = make_cache(default_ttl=100)
        await cache.get_or_set("key", AsyncMock(return_value=1), ttl=5)

        assert cache.ttl("key") == pytest.approx(5)
        clock.advance(5)

        fetcher = AsyncMock(return_value=2)
        assert await cache.get_or_set("key", fetcher) == 2
        fetcher.assert_awaited_once()

    async def test_cached_none_is_not_refetched(self, make_cache):
        """Test a cached None counts as present."""
        cache = make_cache()
        fetcher = AsyncMock(return_value=None)

        await cache.get_or_set("key", fetcher)
        await cache.get_or_set("key", fetcher)

        fetcher.assert_awaited_once()

    async def test_failure_propagates_and_caches_nothing(self, make_cache):
        """Test fetcher errors reach the caller unchanged."""
        cache = make_cache()
        error = ConnectionError("upstream down")

        with pytest.raises(ConnectionError) as info:
            await cache.get_or_set("key", AsyncMock(side_effect=error))

        assert info.value is error
        assert cache.has("key") is False

    async def test_independent_fetches_without_single_flight(self, make_cache):
        """Test concurrent misses each call the fetcher by default."""
        cache = make_cache()
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return calls

        results = await asyncio.gather(*(cache.get_or_set("key", fetcher) for _ in range(3)))

        assert calls == 3
        assert cache.get("key") in results

    async def test_single_flight_shares_fetch(self, make_cache):
        """Test concurrent misses share one fetch when single_flight is on."""
        cache = make_cache(single_flight=True)
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "shared"

        results = await asyncio.gather(*(cache.get_or_set("key", fetcher) for _ in range(5)))

        assert calls == 1
        assert results == ["shared"] * 5

    async def test_single_flight_shares_failure(self, make_cache):
        """Test waiters receive the leader's exception and nothing is cached."""
        cache = make_cache(single_flight=True)

        async def fetcher():
            await asyncio.sleep(0.01)
            raise ValueError("bad payload")

        results = await asyncio.gather(
            *(cache.get_or_set("key", fetcher) for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(r, ValueError) for r in results)
        assert cache.has("key") is False

        # A later call fetches again.
        assert await cache.get_or_set("key", AsyncMock(return_value="ok")) == "ok"

    async def test_cancellation_propagates(self, make_cache):
        """Test a cancelled fetch is not cached."""
        cache = make_cache(single_flight=True)
        started = asyncio.Event()

        async def fetcher():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(cache.get_or_set("key", fetcher))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert cache.has("key") is False

    async def test_waiter_takes_over_when_fetching_caller_cancelled(self, make_cache):
        """Test cancelling the fetching caller leaves a waiting caller to fetch itself."""
        cache = make_cache(single_flight=True)
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(10)

        quick = AsyncMock(return_value="value")

        first = asyncio.create_task(cache.get_or_set("key", slow))
        await started.wait()
        second = asyncio.create_task(cache.get_or_set("key", quick))
        await asyncio.sleep(0)
        first.cancel()

        with pytest.raises(asyncio.CancelledError):
            await first
        assert await second == "value"
        assert cache.get("key") == "value"
        quick.assert_awaited_once()

    async def test_cancelled_waiter_does_not_stop_fetch(self, make_cache):
        """Test cancelling a waiting caller cancels only that caller."""
        cache = make_cache(single_flight=True)
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return "value"

        first = asyncio.create_task(cache.get_or_set("key", fetcher))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_set("key", fetcher))
        await asyncio.sleep(0)
        second.cancel()

        with pytest.raises(asyncio.CancelledError):
            await second
        release.set()
        assert await first == "value"
        assert cache.get("key") == "value"

    async def test_fetch_latency_recorded(self, make_cache):
        """Test fetch latency is observed on a miss."""
        cache = make_cache(name="quotes")
        await cache.get_or_set("key", AsyncMock(return_value=1))
        await cache.get_or_set("key", AsyncMock(return_value=1))

        assert metrics.cache_fetch_latency_seconds.count(cache="quotes") == 1

    async def test_wrap(self, make_cache):
        """Test wrap caches results by the derived key."""
        cache = make_cache()
        fetch_price = AsyncMock(side_effect=lambda symbol: {"symbol": symbol})

        cached = cache.wrap(fetch_price, lambda symbol: f"price:{symbol}", ttl=30)

        assert await cached("ETH") == {"symbol": "ETH"}
        assert await cached("ETH") == {"symbol": "ETH"}
        assert await cached("OP") == {"symbol": "OP"}
        assert fetch_price.await_count == 2
        assert sorted(cache.keys()) == ["price:ETH", "price:OP"]
