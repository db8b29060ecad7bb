"""boundcache

In-process key/value caching with per-entry TTL, LRU or FIFO eviction, size
ceilings, fetch-through helpers and statistics, plus an optional async Redis
adapter.

The in-memory cache is self-contained; there is no module-level cache instance.
Construct one per scope and pass it to the code that needs it.
"""

from .cache import (
    MISSING,
    CacheEntry,
    CacheStats,
    MemoryCache,
    Pruner,
    estimate_size,
    memoize,
)
from .storage import RedisCache, close_all_redis_clients, get_redis_client
from .utils.config import CacheConfig, PrunerConfig, RedisConfig, ResilienceConfig, Settings

__all__ = [
    "MemoryCache",
    "CacheEntry",
    "CacheStats",
    "MISSING",
    "estimate_size",
    "memoize",
    "Pruner",
    "RedisCache",
    "get_redis_client",
    "close_all_redis_clients",
    "Settings",
    "CacheConfig",
    "PrunerConfig",
    "RedisConfig",
    "ResilienceConfig",
]

__version__ = "0.1.0"
