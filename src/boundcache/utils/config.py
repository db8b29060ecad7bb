from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class CacheConfig:
    default_ttl_seconds: float = 300.0
    max_items: Optional[int] = None  # None = unlimited
    max_size_bytes: Optional[int] = None  # None = unlimited
    enable_lru: bool = True
    enable_stats: bool = True
    single_flight: bool = False
    name: str = "default"


@dataclass
class PrunerConfig:
    enabled: bool = False
    interval_seconds: float = 300.0


@dataclass
class RedisConfig:
    url: str = "redis://localhost:6379/0"
    prefix: str = ""


@dataclass
class ResilienceConfig:
    circuit_breaker_enabled: bool = True
    failure_threshold: int = 5
    reset_timeout_seconds: float = 30.0
    retry_max_attempts: int = 3
    retry_backoff_ms: List[int] = dataclasses.field(default_factory=lambda: [100, 500, 2000])


@dataclass
class Settings:
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)
    pruner: PrunerConfig = dataclasses.field(default_factory=PrunerConfig)
    redis: RedisConfig = dataclasses.field(default_factory=RedisConfig)
    resilience: ResilienceConfig = dataclasses.field(default_factory=ResilienceConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        def build(dc_cls, key):
            values = data.get(key) or {}
            return dc_cls(**values)

        return cls(
            cache=build(CacheConfig, "cache"),
            pruner=build(PrunerConfig, "pruner"),
            redis=build(RedisConfig, "redis"),
            resilience=build(ResilienceConfig, "resilience"),
        )
