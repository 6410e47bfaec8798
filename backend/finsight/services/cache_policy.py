"""
Cache freshness policy shared by the price, recommendation and market list caches.

Every cache follows the same cache-or-refresh sequence:

1. Read the cached value for the key.
2. Fresh (younger than the TTL) and complete -> serve it, no provider call.
3. Otherwise call the provider. On success persist the result with
   ``last_refreshed = now`` and serve it.
4. If the provider raises ``UpstreamUnavailable`` the cached value is served
   untouched when one exists; with nothing cached the error propagates.

Only the key shape, TTL and fetch function differ between caches.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from finsight.core.exceptions import UpstreamUnavailable
from finsight.core.metrics import track_cache_lookup
from finsight.utils.datetime_utils import as_naive_utc, utc_now

logger = logging.getLogger(__name__)

K = TypeVar("K")
T = TypeVar("T")
F = TypeVar("F")


@dataclass
class CachedValue(Generic[T]):
    """A value served by a cache and how it was obtained."""

    value: T
    hit: bool = False  # served from cache without calling the provider
    stale: bool = False  # previous value served after a failed refresh, or value incomplete


def is_stale(
    last_refreshed: Optional[datetime],
    ttl: Optional[timedelta],
    now: Optional[datetime] = None,
) -> bool:
    """
    Whether a cached row must be refreshed.

    A row is stale once its age reaches the TTL (``now - last_refreshed >= ttl``).
    A missing timestamp is always stale. A ``None`` TTL never expires.
    """
    if last_refreshed is None:
        return True
    if ttl is None:
        return False
    now = as_naive_utc(now) if now is not None else utc_now()
    return now - as_naive_utc(last_refreshed) >= ttl


async def get_or_refresh(
    key: K,
    ttl: Optional[timedelta],
    *,
    load: Callable[[K], Awaitable[Optional[T]]],
    fetch: Callable[[K], Awaitable[F]],
    store: Callable[[K, F, datetime], Awaitable[T]],
    last_refreshed: Callable[[T], Optional[datetime]],
    is_complete: Optional[Callable[[T], bool]] = None,
    accept: Optional[Callable[[F], bool]] = None,
    cache: str = "cache",
    now: Optional[datetime] = None,
) -> CachedValue[T]:
    """
    Serve ``key`` from the cache, refreshing through ``fetch`` when needed.

    Args:
        key: Cache key (symbol or list type)
        ttl: Maximum age of a servable row, ``None`` for no expiry
        load: Reads the cached value, ``None`` when absent
        fetch: Calls the external provider; raises ``UpstreamUnavailable``
        store: Persists a fetched value stamped with the given time and
            returns the cached representation
        last_refreshed: Extracts the refresh timestamp of a cached value
        is_complete: Extra freshness predicate (market lists need enough rows)
        accept: Check on a fetched value; one that fails it is only stored
            when nothing was cached, otherwise the cached value is served stale
        cache: Cache name used for logs and metrics

    Raises:
        UpstreamUnavailable: Refresh failed and nothing was cached
    """
    now = now or utc_now()
    cached = await load(key)

    if cached is not None and not is_stale(last_refreshed(cached), ttl, now):
        if is_complete is None or is_complete(cached):
            track_cache_lookup(cache, "hit")
            logger.debug("cache_hit", extra={"cache": cache, "key": str(key)})
            return CachedValue(value=cached, hit=True)

    try:
        fetched = await fetch(key)
    except UpstreamUnavailable as e:
        if cached is None:
            track_cache_lookup(cache, "miss")
            raise
        track_cache_lookup(cache, "stale_served")
        logger.warning(
            "cache_refresh_failed",
            extra={"cache": cache, "key": str(key), "error": str(e)},
        )
        return CachedValue(value=cached, stale=True)

    if accept is not None and cached is not None and not accept(fetched):
        track_cache_lookup(cache, "stale_served")
        logger.warning("cache_refresh_rejected", extra={"cache": cache, "key": str(key)})
        return CachedValue(value=cached, stale=True)

    value = await store(key, fetched, now)
    track_cache_lookup(cache, "refreshed")
    logger.info("cache_refreshed", extra={"cache": cache, "key": str(key)})
    return CachedValue(value=value, stale=is_complete is not None and not is_complete(value))
