"""Unit tests for configuration dataclasses."""

import pytest

from boundcache.cache.memory import MemoryCache
from boundcache.utils.config import CacheConfig, PrunerConfig, RedisConfig, ResilienceConfig, Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.cache == CacheConfig()
        assert settings.cache.default_ttl_seconds == 300.0
        assert settings.cache.max_items is None
        assert settings.cache.enable_lru is True
        assert settings.pruner == PrunerConfig()
        assert settings.redis.url == "redis://localhost:6379/0"
        assert settings.resilience.retry_backoff_ms == [100, 500, 2000]

    def test_from_dict(self):
        settings = Settings.from_dict(
            {
                "cache": {"default_ttl_seconds": 60, "max_items": 1000, "max_size_bytes": 10 * 1024 * 1024},
                "pruner": {"enabled": True, "interval_seconds": 30},
                "redis": {"url": "redis://cache:6379/2", "prefix": "af"},
                "resilience": None,
            }
        )

        assert settings.cache.max_items == 1000
        assert settings.cache.max_size_bytes == 10 * 1024 * 1024
        assert settings.cache.enable_stats is True
        assert settings.pruner.enabled is True
        assert settings.redis == RedisConfig(url="redis://cache:6379/2", prefix="af")
        assert settings.resilience == ResilienceConfig()

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(TypeError):
            Settings.from_dict({"cache": {"ttl": 5}})

    def test_independent_defaults(self):
        first, second = ResilienceConfig(), ResilienceConfig()
        first.retry_backoff_ms.append(9000)

        assert second.retry_backoff_ms == [100, 500, 2000]


class TestCacheFromConfig:
    def test_memory_cache_from_config(self):
        config = CacheConfig(
            default_ttl_seconds=5,
            max_items=2,
            max_size_bytes=1024,
            enable_lru=False,
            single_flight=True,
            name="portfolio",
        )

        cache = MemoryCache.from_config(config)

        assert cache.default_ttl == 5
        assert cache.max_items == 2
        assert cache.max_size == 1024
        assert cache.name == "portfolio"

        cache.set("a", 1)
        cache.get("a")
        cache.set("b", 2)
        cache.set("c", 3)
        # FIFO: "a" goes first despite the read
        assert cache.has("a") is False
