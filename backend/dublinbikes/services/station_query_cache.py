"""
Query result cache for station listings.

Pages are cached under a key derived from every normalized query field plus
a per-backend namespace, so v1 and v2 results never collide. Any write to a
backend drops the whole namespace: keys describe filters, not stations, so
there is no way to tell which cached pages a single write affects.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from dublinbikes.core.config import Settings, get_settings
from dublinbikes.core.metrics import observe_cache_refresh, record_cache_event
from dublinbikes.services.cache import CacheService
from dublinbikes.services.station_query import StationQuery
from dublinbikes.services.stations import (
    Station,
    station_from_record,
    station_to_record,
)

logger = logging.getLogger(__name__)


def station_namespace_prefix(namespace: str) -> str:
    return f"stations:{namespace}:"


def station_query_cache_key(namespace: str, query: StationQuery) -> str:
    """Generate the cache key for a normalized station query.

    Args:
        namespace: Backend namespace (``v1`` or ``v2``)
        query: Normalized query parameters

    Returns:
        Standardized cache key string covering every query field
    """
    status = query.status.strip().lower() if query.status else "any"
    min_bikes = "any" if query.min_bikes is None else str(query.min_bikes)
    search = query.search_term.strip().lower() if query.search_term else "none"
    return (
        f"{station_namespace_prefix(namespace)}query:"
        f"status={status}:min_bikes={min_bikes}:q={search}:"
        f"sort={query.sort}:dir={query.dir}:"
        f"page={query.page}:page_size={query.page_size}"
    )


class StationQueryCache:
    """Memoizes query pages for one backend namespace."""

    def __init__(
        self,
        cache: CacheService,
        namespace: str,
        *,
        ttl_seconds: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._cache = cache
        self._settings = settings or get_settings()
        self.namespace = namespace
        self.ttl_seconds = (
            ttl_seconds
            if ttl_seconds is not None
            else self._settings.station_query_cache_ttl_seconds
        )
        self._cache_name = f"stations_{namespace}"
        self._generation = 0
        self._generation_lock = asyncio.Lock()

    def cache_key(self, query: StationQuery) -> str:
        return station_query_cache_key(self.namespace, query)

    async def lookup(self, query: StationQuery) -> tuple[Station, ...] | None:
        """Return the cached page for ``query`` or None on a miss."""
        payload = await self._cache.get_json(self.cache_key(query))
        if payload is None:
            return None
        try:
            return tuple(station_from_record(record) for record in payload["stations"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding undecodable cache entry for %s: %s", query, exc)
            return None

    async def get_or_compute(
        self,
        query: StationQuery,
        compute: Callable[[], Awaitable[tuple[Station, ...]]],
    ) -> tuple[tuple[Station, ...], str]:
        """Return ``(page, cache_status)``, computing and storing on a miss.

        ``cache_status`` is ``"hit"`` or ``"miss"``.
        """
        cached = await self.lookup(query)
        if cached is not None:
            record_cache_event(self._cache_name, "hit")
            return cached, "hit"

        record_cache_event(self._cache_name, "miss")
        cache_key = self.cache_key(query)
        try:
            async with self._cache.single_flight(
                cache_key,
                ttl_seconds=self._settings.cache_singleflight_lock_ttl_seconds,
                wait_timeout=self._settings.cache_singleflight_lock_wait_seconds,
                retry_delay=self._settings.cache_singleflight_retry_delay_seconds,
            ):
                cached = await self.lookup(query)
                if cached is not None:
                    record_cache_event(self._cache_name, "refresh_skip_hit")
                    return cached, "hit"
                return await self._refresh(query, compute), "miss"
        except TimeoutError:
            record_cache_event(self._cache_name, "lock_timeout")
            logger.warning("Cache lock timeout for %s; computing uncached", cache_key)
            return await compute(), "miss"

    async def _refresh(
        self,
        query: StationQuery,
        compute: Callable[[], Awaitable[tuple[Station, ...]]],
    ) -> tuple[Station, ...]:
        generation = self._generation
        start = time.perf_counter()
        page = await compute()
        observe_cache_refresh(self._cache_name, time.perf_counter() - start)

        if generation != self._generation:
            # A write landed while computing; the page may predate it.
            record_cache_event(self._cache_name, "refresh_discarded")
            return page

        await self._cache.set_json(
            self.cache_key(query),
            {"stations": [station_to_record(station) for station in page]},
            ttl_seconds=self.ttl_seconds,
        )
        record_cache_event(self._cache_name, "refresh_success")
        return page

    async def invalidate(self) -> int:
        """Drop every cached page in this namespace."""
        async with self._generation_lock:
            self._generation += 1
            removed = await self._cache.delete_prefix(
                station_namespace_prefix(self.namespace)
            )
        record_cache_event(self._cache_name, "invalidate")
        logger.debug("Invalidated %s cached pages in %s", removed, self.namespace)
        return removed


__all__ = [
    "StationQueryCache",
    "station_namespace_prefix",
    "station_query_cache_key",
]
