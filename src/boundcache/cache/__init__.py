from .memoize import memoize
from .memory import MISSING, CacheEntry, CacheStats, MemoryCache, estimate_size
from .pruner import Pruner

__all__ = [
    "MemoryCache",
    "CacheEntry",
    "CacheStats",
    "MISSING",
    "estimate_size",
    "memoize",
    "Pruner",
]
