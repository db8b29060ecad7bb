"""In-process key/value cache with per-entry TTL, LRU or FIFO eviction and statistics.

Entries live in an ordered mapping whose order is the eviction order: with LRU
enabled a successful ``get`` moves the entry to the back, without it the order is
plain insertion order. Expired entries are dropped lazily when read and eagerly by
``prune``; nothing runs in the background (see :class:`boundcache.cache.pruner.Pruner`).
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
import threading
import time
import typing as t
from collections import OrderedDict
from dataclasses import dataclass

from ..monitoring import metrics
from ..utils.config import CacheConfig

V = t.TypeVar("V")

_logger = logging.getLogger(__name__)

Pattern = t.Union[str, "re.Pattern[str]"]


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Sentinel for "no entry"; pass as ``default`` to tell a cached None from a miss.
MISSING: t.Any = _Missing()


def estimate_size(value: t.Any) -> int:
    """Approximate byte size of ``value``: UTF-8 length of its JSON rendering."""
    try:
        rendered = json.dumps(value, default=repr, ensure_ascii=False)
    except (TypeError, ValueError):
        # non-string dict keys, circular references
        rendered = repr(value)
    return len(rendered.encode("utf-8"))


def _cancel_requested() -> bool:
    task = asyncio.current_task()
    cancelling = getattr(task, "cancelling", None)  # Python 3.11+
    return bool(cancelling is not None and cancelling())


@dataclass
class CacheEntry(t.Generic[V]):
    value: V
    expires_at: float
    created_at: float
    last_accessed_at: float
    size: int
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


@dataclass
class CacheStats:
    item_count: int
    hits: int
    misses: int
    hit_rate: float
    total_size: int
    avg_size: float
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    expirations: int = 0


class MemoryCache(t.Generic[V]):
    """Bounded TTL cache.

    Args:
        default_ttl: Seconds an entry lives when ``set`` gets no ``ttl``.
        max_items: Entry-count ceiling, ``None`` for unlimited.
        max_size: Ceiling on the summed size estimates in bytes, ``None`` for unlimited.
        enable_lru: Evict least recently read entries first; otherwise oldest inserted.
        enable_stats: Keep hit/miss counters and feed :mod:`boundcache.monitoring.metrics`.
        single_flight: Share one in-flight fetch between concurrent ``get_or_set``
            callers for the same key (per event loop).
        size_estimator: Callable returning the approximate byte size of a value.
        clock: Monotonic clock in seconds.
        name: Label used in logs and metrics.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_items: t.Optional[int] = None,
        max_size: t.Optional[int] = None,
        enable_lru: bool = True,
        enable_stats: bool = True,
        single_flight: bool = False,
        size_estimator: t.Callable[[t.Any], int] = estimate_size,
        clock: t.Callable[[], float] = time.monotonic,
        name: str = "default",
    ) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if max_items is not None and max_items < 0:
            raise ValueError("max_items must be >= 0 or None")
        if max_size is not None and max_size < 0:
            raise ValueError("max_size must be >= 0 or None")
        self._default_ttl = default_ttl
        self._max_items = max_items
        self._max_size = max_size
        self._enable_lru = enable_lru
        self._enable_stats = enable_stats
        self._single_flight = single_flight
        self._size_estimator = size_estimator
        self._clock = clock
        self._name = name

        self._store: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.RLock()
        self._total_size = 0
        self._inflight: t.Dict[str, "asyncio.Future[V]"] = {}
        self._reset_counters()

    @classmethod
    def from_config(cls, config: CacheConfig, **kwargs: t.Any) -> "MemoryCache[t.Any]":
        return cls(
            default_ttl=config.default_ttl_seconds,
            max_items=config.max_items,
            max_size=config.max_size_bytes,
            enable_lru=config.enable_lru,
            enable_stats=config.enable_stats,
            single_flight=config.single_flight,
            name=config.name,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def max_items(self) -> t.Optional[int]:
        return self._max_items

    @property
    def max_size(self) -> t.Optional[int]:
        return self._max_size

    @property
    def total_size(self) -> int:
        return self._total_size

    # -- internals (callers hold the lock) -------------------------------------------

    def _reset_counters(self) -> None:
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0
        self._expirations = 0

    def _discard(self, key: str) -> t.Optional[CacheEntry[V]]:
        entry = self._store.pop(key, None)
        if entry is not None:
            self._total_size -= entry.size
        return entry

    def _expire(self, key: str) -> None:
        if self._discard(key) is None:
            return
        if self._enable_stats:
            self._expirations += 1
            metrics.cache_evictions_total.inc(cache=self._name, reason="expired")

    def _live_entry(self, key: str, now: float) -> t.Optional[CacheEntry[V]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            self._expire(key)
            return None
        return entry

    def _prune_expired(self, now: float) -> int:
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            self._expire(key)
        return len(expired)

    def _over_capacity(self) -> bool:
        if self._max_items is not None and len(self._store) > self._max_items:
            return True
        if self._max_size is not None and self._total_size > self._max_size:
            return True
        return False

    def _enforce_limits(self, now: float) -> None:
        if not self._over_capacity():
            return
        self._prune_expired(now)
        while self._store and self._over_capacity():
            key = next(iter(self._store))
            self._discard(key)
            _logger.debug("Cache %s evicted %r (capacity)", self._name, key)
            if self._enable_stats:
                self._evictions += 1
                metrics.cache_evictions_total.inc(cache=self._name, reason="capacity")

    def _record(self, hit: bool) -> None:
        if not self._enable_stats:
            return
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        metrics.cache_requests_total.inc(cache=self._name, result="hit" if hit else "miss")

    # -- single-key operations -------------------------------------------------------

    def set(self, key: str, value: V, ttl: t.Optional[float] = None) -> None:
        """Store ``value`` under ``key``, replacing any previous entry.

        A ``ttl`` of zero or less stores an entry that is already expired.
        """
        ttl = self._default_ttl if ttl is None else ttl
        size = self._size_estimator(value)
        with self._lock:
            now = self._clock()
            self._discard(key)
            self._store[key] = CacheEntry(
                value=value,
                expires_at=now + ttl,
                created_at=now,
                last_accessed_at=now,
                size=size,
            )
            self._total_size += size
            if self._enable_stats:
                self._sets += 1
            self._enforce_limits(now)

    def get(self, key: str, default: t.Any = None) -> t.Any:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                self._record(hit=False)
                return default
            entry.access_count += 1
            if self._enable_lru:
                entry.last_accessed_at = now
                self._store.move_to_end(key)
            self._record(hit=True)
            return entry.value

    def has(self, key: str) -> bool:
        """Existence check; does not touch statistics or recency."""
        with self._lock:
            return self._live_entry(key, self._clock()) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._discard(key) is not None
            if removed and self._enable_stats:
                self._deletes += 1
            return removed

    def ttl(self, key: str) -> float:
        """Seconds until ``key`` expires, or -1 when it is absent or expired."""
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return -1
            return max(0.0, entry.expires_at - now)

    def extend(self, key: str, additional_ttl: float) -> bool:
        """Push the expiry of a live entry back by ``additional_ttl`` seconds."""
        with self._lock:
            entry = self._live_entry(key, self._clock())
            if entry is None:
                return False
            entry.expires_at += additional_ttl
            return True

    def touch(self, key: str, ttl: t.Optional[float] = None) -> bool:
        """Reset the expiry of a live entry to ``ttl`` seconds from now."""
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return False
            entry.expires_at = now + ttl
            return True

    # -- whole-cache operations ------------------------------------------------------

    def clear(self) -> None:
        """Drop every entry and reset all counters."""
        with self._lock:
            self._store.clear()
            self._total_size = 0
            self._reset_counters()

    def reset_stats(self) -> None:
        with self._lock:
            self._reset_counters()

    def size(self) -> int:
        with self._lock:
            self._prune_expired(self._clock())
            return len(self._store)

    def keys(self) -> t.List[str]:
        with self._lock:
            self._prune_expired(self._clock())
            return list(self._store)

    def prune(self) -> int:
        """Remove all expired entries and return how many were removed."""
        with self._lock:
            removed = self._prune_expired(self._clock())
        if removed:
            _logger.debug("Cache %s pruned %d expired entries", self._name, removed)
            if self._enable_stats:
                metrics.cache_prune_total.inc(removed, cache=self._name)
        return removed

    def get_stats(self) -> CacheStats:
        with self._lock:
            self._prune_expired(self._clock())
            item_count = len(self._store)
            requests = self._hits + self._misses
            return CacheStats(
                item_count=item_count,
                hits=self._hits,
                misses=self._misses,
                hit_rate=(self._hits / requests) * 100 if requests else 0.0,
                total_size=self._total_size,
                avg_size=self._total_size / item_count if item_count else 0.0,
                sets=self._sets,
                deletes=self._deletes,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    # -- batch and pattern operations ------------------------------------------------

    def get_many(self, keys: t.Iterable[str]) -> t.Dict[str, V]:
        result: t.Dict[str, V] = {}
        for key in keys:
            value = self.get(key, MISSING)
            if value is not MISSING:
                result[key] = value
        return result

    def set_many(
        self,
        entries: t.Union[t.Mapping[str, V], t.Iterable[t.Tuple[str, V]]],
        ttl: t.Optional[float] = None,
    ) -> None:
        items = entries.items() if isinstance(entries, t.Mapping) else entries
        for key, value in items:
            self.set(key, value, ttl)

    def delete_many(self, keys: t.Iterable[str]) -> int:
        return sum(1 for key in keys if self.delete(key))

    def get_pattern(self, pattern: Pattern) -> t.Dict[str, V]:
        regex = re.compile(pattern)
        with self._lock:
            matched = [key for key in self._store if regex.search(key)]
            return self.get_many(matched)

    def delete_pattern(self, pattern: Pattern) -> int:
        regex = re.compile(pattern)
        with self._lock:
            now = self._clock()
            matched = [key for key in self._store if regex.search(key)]
            return sum(1 for key in matched if self._live_entry(key, now) is not None and self.delete(key))

    # -- fetch-through ---------------------------------------------------------------

    async def get_or_set(
        self,
        key: str,
        fetcher: t.Callable[[], t.Union[V, t.Awaitable[V]]],
        ttl: t.Optional[float] = None,
    ) -> V:
        """Return the cached value for ``key`` or fetch, cache and return it.

        ``fetcher`` may be sync or async. Its exceptions propagate and nothing is cached.
        """
        value = self.get(key, MISSING)
        if value is not MISSING:
            return value
        if not self._single_flight:
            return await self._fetch(key, fetcher, ttl)

        loop = asyncio.get_running_loop()
        pending = self._inflight.get(key)
        if pending is not None and pending.get_loop() is loop:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # only the leader was cancelled; take over the fetch
                if not pending.cancelled() or _cancel_requested():
                    raise
            return await self.get_or_set(key, fetcher, ttl)

        future: "asyncio.Future[V]" = loop.create_future()
        self._inflight[key] = future
        try:
            value = await self._fetch(key, fetcher, ttl)
        except Exception as exc:
            future.set_exception(exc)
            # retrieved here so an unawaited future does not log
            future.exception()
            raise
        else:
            future.set_result(value)
            return value
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
            if not future.done():
                future.cancel()

    async def _fetch(self, key: str, fetcher: t.Callable[[], t.Any], ttl: t.Optional[float]) -> V:
        started = time.perf_counter()
        result = fetcher()
        if inspect.isawaitable(result):
            result = await result
        if self._enable_stats:
            metrics.cache_fetch_latency_seconds.observe(time.perf_counter() - started, cache=self._name)
        self.set(key, result, ttl)
        return result

    def wrap(
        self,
        fn: t.Callable[..., t.Awaitable[V]],
        key_fn: t.Callable[..., str],
        ttl: t.Optional[float] = None,
    ) -> t.Callable[..., t.Awaitable[V]]:
        """Return an async function that caches ``fn`` results under ``key_fn(*args, **kwargs)``."""

        async def wrapped(*args: t.Any, **kwargs: t.Any) -> V:
            return await self.get_or_set(key_fn(*args, **kwargs), lambda: fn(*args, **kwargs), ttl)

        return wrapped

    # -- dunder helpers ----------------------------------------------------------------

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __repr__(self) -> str:
        return (
            f"MemoryCache(name={self._name!r}, items={len(self._store)}, "
            f"max_items={self._max_items}, max_size={self._max_size})"
        )
