from __future__ import annotations

import functools
import inspect
import json
import typing as t

from .memory import MISSING, MemoryCache

F = t.TypeVar("F", bound=t.Callable[..., t.Any])


def default_key(fn: t.Callable[..., t.Any], args: tuple, kwargs: dict) -> str:
    rendered = json.dumps([list(args), kwargs], sort_keys=True, default=repr)
    return f"{fn.__module__}.{fn.__qualname__}:{rendered}"


def memoize(
    cache: t.Optional[MemoryCache[t.Any]] = None,
    *,
    ttl: t.Optional[float] = None,
    key: t.Optional[t.Callable[..., str]] = None,
) -> t.Callable[[F], F]:
    """Cache a function's results in a :class:`MemoryCache`.

    Works for plain and ``async def`` functions. ``key`` receives the call's arguments
    and returns the cache key; by default the function name plus a JSON rendering of
    the arguments is used. ``None`` results are cached like any other value. Without
    ``cache`` each decorated function gets its own private cache, exposed as
    ``fn.cache``.
    """

    def decorator(fn: F) -> F:
        store = cache if cache is not None else MemoryCache(name=fn.__qualname__)

        def make_key(args: tuple, kwargs: dict) -> str:
            if key is not None:
                return key(*args, **kwargs)
            return default_key(fn, args, kwargs)

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: t.Any, **kwargs: t.Any) -> t.Any:
                return await store.get_or_set(make_key(args, kwargs), lambda: fn(*args, **kwargs), ttl)

            async_wrapper.cache = store  # type: ignore[attr-defined]
            return t.cast(F, async_wrapper)

        @functools.wraps(fn)
        def wrapper(*args: t.Any, **kwargs: t.Any) -> t.Any:
            cache_key = make_key(args, kwargs)
            value = store.get(cache_key, MISSING)
            if value is MISSING:
                value = fn(*args, **kwargs)
                store.set(cache_key, value, ttl)
            return value

        wrapper.cache = store  # type: ignore[attr-defined]
        return t.cast(F, wrapper)

    return decorator
