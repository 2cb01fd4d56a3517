from __future__ import annotations

from prometheus_client import Counter, Histogram

CACHE_EVENTS = Counter(
    "dublinbikes_cache_events_total",
    "Cache operations recorded by the station API.",
    labelnames=("cache", "event"),
)
CACHE_REFRESH_LATENCY = Histogram(
    "dublinbikes_cache_refresh_seconds",
    "Latency of cache refresh operations.",
    labelnames=("cache",),
)
STATION_STORE_OPERATIONS = Counter(
    "dublinbikes_station_store_operations_total",
    "Station store operations per backend.",
    labelnames=("backend", "operation", "result"),
)
LIVE_UPDATE_TICKS = Counter(
    "dublinbikes_live_update_ticks_total",
    "Simulated live availability update passes.",
    labelnames=("backend", "result"),
)


def record_cache_event(cache: str, event: str) -> None:
    """Increment a cache event counter."""
    CACHE_EVENTS.labels(cache=cache, event=event).inc()


def observe_cache_refresh(cache: str, duration_seconds: float) -> None:
    """Record cache refresh latency."""
    CACHE_REFRESH_LATENCY.labels(cache=cache).observe(duration_seconds)


def record_station_operation(backend: str, operation: str, result: str) -> None:
    """Record the outcome of a station store operation."""
    STATION_STORE_OPERATIONS.labels(
        backend=backend, operation=operation, result=result
    ).inc()


def record_live_update_tick(backend: str, result: str) -> None:
    """Record the outcome of one live update pass."""
    LIVE_UPDATE_TICKS.labels(backend=backend, result=result).inc()
