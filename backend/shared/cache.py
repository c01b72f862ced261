"""In-process TTL cache with stale fallback.

Uses cachetools.TTLCache for zero-infrastructure caching.  When the database
is unreachable, reads fall back to the last value that was successfully
loaded so an activation can still classify gifts with yesterday's config.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes "not in cache" from a cached None
_MISSING = object()


class AsyncTTLCache:
    """Two-tier cache.

    ``_cache`` holds fresh values governed by *ttl*.  ``_stale`` is an LRU
    bounded by *maxsize* holding last-known-good values that survive expiry
    and invalidation; it is consulted only after the loader has failed.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: OrderedDict[str, Any] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def get(self, key: str) -> Any:
        """Return the fresh value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value
        self._stale[key] = value
        self._stale.move_to_end(key)
        while len(self._stale) > self._maxsize:
            evicted, _ = self._stale.popitem(last=False)
            self._locks.pop(evicted, None)

    def invalidate(self, key: str) -> None:
        """Drop the fresh value; the stale copy is kept."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def get_stale(self, key: str) -> Any:
        value = self._stale.get(key, _MISSING)
        if value is not _MISSING:
            self._stale.move_to_end(key)
        return value

    @property
    def size(self) -> int:
        return len(self._cache)

    @property
    def stale_size(self) -> int:
        return len(self._stale)


async def _load_with_fallback(
    cache: AsyncTTLCache,
    key: str,
    loader: Callable[[], Awaitable[Any]],
    retry: int,
) -> Any:
    last_exc: BaseException | None = None
    for attempt in range(1, retry + 1):
        try:
            result = await loader()
            cache.set(key, result)
            return result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_exc = exc
            if attempt < retry:
                delay = 0.5 * attempt
                logger.warning(
                    "DB attempt %d/%d failed for %s: %s, retrying in %.1fs",
                    attempt,
                    retry,
                    key,
                    type(exc).__name__,
                    delay,
                )
                await asyncio.sleep(delay)

    stale = cache.get_stale(key)
    if stale is not _MISSING:
        logger.warning("Returning stale data for %s (%s)", key, type(last_exc).__name__)
        return stale
    raise last_exc  # type: ignore[misc]


def cached(
    cache: AsyncTTLCache,
    key_func: Callable[..., str],
    *,
    retry: int = 3,
):
    """Cache an async loader's result with retry and stale fallback.

    The decorated coroutine additionally exposes ``refresh(*args, **kwargs)``,
    which skips the fresh tier, reloads from the database and still falls
    back to stale data if every attempt fails.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = key_func(*args, **kwargs)
            result = cache.get(key)
            if result is not _MISSING:
                return result

            async with cache.lock_for(key):
                result = cache.get(key)
                if result is not _MISSING:
                    return result
                return await _load_with_fallback(
                    cache, key, lambda: func(*args, **kwargs), retry
                )

        async def refresh(*args: Any, **kwargs: Any) -> Any:
            key = key_func(*args, **kwargs)
            async with cache.lock_for(key):
                cache.invalidate(key)
                return await _load_with_fallback(
                    cache, key, lambda: func(*args, **kwargs), retry
                )

        wrapper.cache = cache  # type: ignore[attr-defined]
        wrapper.refresh = refresh  # type: ignore[attr-defined]
        return wrapper

    return decorator
