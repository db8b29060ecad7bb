from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(tuple(sorted(labels.items())), 0.0)

    def reset(self) -> None:
        self.values.clear()


@dataclass
class Histogram:
    """Cumulative-free bucket histogram; an observation lands in the first bucket it fits.

    Values above the largest bucket are only reflected in ``totals``.
    """

    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)
    totals: Dict[Tuple, int] = field(default_factory=dict)

    def observe(self, val: float, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        if key not in self.counts:
            self.counts[key] = [0 for _ in self.buckets]
        self.totals[key] = self.totals.get(key, 0) + 1
        for i, b in enumerate(self.buckets):
            if val <= b:
                self.counts[key][i] += 1
                break

    def count(self, **labels: Any) -> int:
        return self.totals.get(tuple(sorted(labels.items())), 0)

    def reset(self) -> None:
        self.counts.clear()
        self.totals.clear()


# Predefined metrics
cache_requests_total = Counter("cache_requests_total", "Cache reads by result (hit | miss)")
cache_evictions_total = Counter("cache_evictions_total", "Entries removed by reason (capacity | expired)")
cache_prune_total = Counter("cache_prune_total", "Expired entries removed by explicit prune")
cache_fetch_latency_seconds = Histogram(
    "cache_fetch_latency_seconds",
    "Latency of get_or_set fetchers on a miss",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ALL_METRICS = (cache_requests_total, cache_evictions_total, cache_prune_total, cache_fetch_latency_seconds)


def reset_all() -> None:
    for metric in ALL_METRICS:
        metric.reset()
