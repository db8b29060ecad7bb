#!/usr/bin/env python3

import asyncio
import json
import logging
import random
import time
from typing import Optional

import click

from boundcache import MemoryCache, Pruner, RedisCache, Settings


def _now() -> str:
    return time.strftime("%H:%M:%S")


async def fake_balance_lookup(address: str) -> dict:
    # Stand-in for a slow indexer call
    await asyncio.sleep(0.2)
    return {"address": address, "balance": round(random.uniform(0, 10), 4)}


def print_stats(cache: MemoryCache) -> None:
    stats = cache.get_stats()
    print(
        f"[{_now()}] items={stats.item_count} hits={stats.hits} misses={stats.misses} "
        f"hit_rate={stats.hit_rate:.1f}% size={stats.total_size}B evictions={stats.evictions}"
    )


async def run_memory(settings: Settings, addresses: list[str], rounds: int) -> None:
    cache = MemoryCache.from_config(settings.cache)
    pruner = Pruner.from_config(cache, settings.pruner)

    async def lookup_all() -> None:
        for _ in range(rounds):
            results = await asyncio.gather(
                *(cache.get_or_set(f"balance:{a}", lambda a=a: fake_balance_lookup(a)) for a in addresses)
            )
            for result in results:
                print(f"  {result['address']}: {result['balance']}")
            print_stats(cache)

    if settings.pruner.enabled:
        async with pruner:
            await lookup_all()
    else:
        await lookup_all()
    print(f"[{_now()}] pruned {cache.prune()} expired entries")


async def run_redis(settings: Settings, addresses: list[str]) -> None:
    cache = RedisCache.from_config(settings.redis, settings.resilience)
    try:
        if not await cache.is_healthy():
            print(f"Redis at {settings.redis.url} is not reachable")
            return
        for address in addresses:
            key = f"balance:{address}"
            value = await cache.get(key)
            if value is None:
                value = await fake_balance_lookup(address)
                await cache.set(key, value, int(settings.cache.default_ttl_seconds))
            ttl = await cache.get_ttl(key)
            print(f"  {address}: {value['balance']} (ttl={ttl}s)")
    finally:
        await cache.disconnect()


@click.command()
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="JSON settings file")
@click.option("--ttl", default=None, type=float, help="Default TTL in seconds")
@click.option("--max-items", default=None, type=int, help="Item-count ceiling")
@click.option("--fifo", is_flag=True, help="Evict by insertion order instead of LRU")
@click.option("--single-flight", is_flag=True, help="Share concurrent fetches for the same key")
@click.option("--rounds", default=3, type=int, help="Lookup rounds")
@click.option("--redis", "use_redis", is_flag=True, help="Use the Redis adapter instead of memory")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.argument("addresses", nargs=-1)
def main(
    config_path: Optional[str],
    ttl: Optional[float],
    max_items: Optional[int],
    fifo: bool,
    single_flight: bool,
    rounds: int,
    use_redis: bool,
    verbose: bool,
    addresses: tuple[str, ...],
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    data = {}
    if config_path:
        with open(config_path) as fh:
            data = json.load(fh)
    settings = Settings.from_dict(data)
    if ttl is not None:
        settings.cache.default_ttl_seconds = ttl
    if max_items is not None:
        settings.cache.max_items = max_items
    if fifo:
        settings.cache.enable_lru = False
    if single_flight:
        settings.cache.single_flight = True

    targets = list(addresses) or ["0xabc", "0xdef", "0x123"]
    if use_redis:
        asyncio.run(run_redis(settings, targets))
    else:
        asyncio.run(run_memory(settings, targets, rounds))


if __name__ == "__main__":
    main()
