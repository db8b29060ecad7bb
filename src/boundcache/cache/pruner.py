from __future__ import annotations

import logging
import sys
import typing as t

import anyio
from anyio.abc import TaskGroup, TaskStatus

from ..utils.config import PrunerConfig
from .memory import MemoryCache

_logger = logging.getLogger(__name__)


class Pruner:
    """Periodically removes expired entries from a :class:`MemoryCache`.

    The cache only expires entries lazily; run a pruner next to long-lived caches
    whose keys may never be read again. Either start it in your own task group::

        async with anyio.create_task_group() as tg:
            await tg.start(pruner.run)
            ...
            pruner.stop()

    or use it as an async context manager.
    """

    def __init__(self, cache: MemoryCache[t.Any], interval_seconds: float = 300.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._cache = cache
        self._interval = interval_seconds
        self._cancel_scope: t.Optional[anyio.CancelScope] = None
        self._task_group: t.Optional[TaskGroup] = None
        self.runs = 0

    @classmethod
    def from_config(cls, cache: MemoryCache[t.Any], config: PrunerConfig) -> "Pruner":
        return cls(cache, interval_seconds=config.interval_seconds)

    @property
    def running(self) -> bool:
        return self._cancel_scope is not None

    def run_once(self) -> int:
        removed = self._cache.prune()
        self.runs += 1
        return removed

    async def run(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        if self._cancel_scope is not None:
            raise RuntimeError("pruner already running")
        with anyio.CancelScope() as scope:
            self._cancel_scope = scope
            _logger.info("Pruner started for cache %s every %.1fs", self._cache.name, self._interval)
            task_status.started()
            try:
                while True:
                    await anyio.sleep(self._interval)
                    try:
                        self.run_once()
                    except Exception:
                        _logger.exception("Pruning cache %s failed", self._cache.name)
            finally:
                self._cancel_scope = None
                _logger.info("Pruner stopped for cache %s", self._cache.name)

    def stop(self) -> None:
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    async def __aenter__(self) -> "Pruner":
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        try:
            await task_group.start(self.run)
        except BaseException:
            await task_group.__aexit__(*sys.exc_info())
            raise
        self._task_group = task_group
        return self

    async def __aexit__(self, *exc_info: t.Any) -> t.Optional[bool]:
        self.stop()
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        return await task_group.__aexit__(*exc_info)
