"""Configuration and resilience helpers."""

from .config import CacheConfig, PrunerConfig, RedisConfig, ResilienceConfig, Settings
from .resilience import CircuitBreaker, CircuitBreakerConfig, CircuitState, with_retries

__all__ = [
    "Settings",
    "CacheConfig",
    "PrunerConfig",
    "RedisConfig",
    "ResilienceConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "with_retries",
]
