"""
Cache service with resilience patterns.

Provides distributed caching via Valkey with:
- Circuit breaker for graceful degradation when Valkey is unavailable
- In-memory fallback cache for resilience during outages
- Single-flight locking to prevent cache stampedes
- Prefix invalidation for dropping a whole key namespace at once
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from functools import lru_cache, wraps
from typing import Any, AsyncIterator, Callable

import valkey.asyncio as valkey

from dublinbikes.core.config import get_settings
from dublinbikes.core.metrics import record_cache_event

logger = logging.getLogger(__name__)


# =============================================================================
# TTL Configuration
# =============================================================================


class TTLConfig:
    """Centralized TTL configuration with validation."""

    def __init__(self) -> None:
        settings = get_settings()

        self.station_query_cache_ttl = settings.station_query_cache_ttl_seconds
        self.circuit_breaker_timeout = settings.cache_circuit_breaker_timeout_seconds

        self._validate_ttls()

    def _validate_ttls(self) -> None:
        """Validate that all TTL values are non-negative."""
        for attr_name, value in self.__dict__.items():
            if "ttl" in attr_name and isinstance(value, (int, float)) and value < 0:
                raise ValueError(
                    f"TTL value for {attr_name} cannot be negative: {value}"
                )

    def get_effective_ttl(self, ttl_seconds: int | None) -> int | None:
        """Get the effective TTL, using the station query default if none provided."""
        if ttl_seconds is not None:
            return ttl_seconds if ttl_seconds > 0 else None
        return self.station_query_cache_ttl if self.station_query_cache_ttl > 0 else None


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreaker:
    """
    Circuit breaker for cache operations.

    When Valkey becomes unavailable, the circuit opens and operations
    fail fast, falling back to the in-memory cache instead.
    """

    def __init__(self, config: TTLConfig) -> None:
        self._config = config
        self._open_until = 0.0

    def is_open(self) -> bool:
        """Check if the circuit breaker is currently open."""
        return time.monotonic() < self._open_until

    def open(self) -> None:
        """Open the circuit breaker for the configured timeout."""
        self._open_until = time.monotonic() + self._config.circuit_breaker_timeout

    def close(self) -> None:
        """Close the circuit breaker immediately."""
        self._open_until = 0.0

    def protect(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator to protect a coroutine function with circuit breaker logic."""

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            if self.is_open():
                return None
            try:
                result = await func(*args, **kwargs)
                self.close()
                return result
            except Exception as exc:
                logger.warning(
                    "Circuit breaker opened for %s", func.__name__, exc_info=exc
                )
                self.open()
                return None

        return wrapper


# =============================================================================
# Fallback Cache
# =============================================================================


class FallbackCache:
    """
    In-memory fallback cache used when Valkey is unavailable.

    Safe for concurrent tasks, with automatic cleanup of expired entries.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: str, ttl_seconds: int | None) -> None:
        """Store a value with optional TTL."""
        expires_at = None
        if ttl_seconds and ttl_seconds > 0:
            expires_at = time.monotonic() + ttl_seconds

        async with self._lock:
            self._store[key] = (value, expires_at)

    async def get(self, key: str) -> str | None:
        """Retrieve a value, returning None if expired or not found."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._store[key]
                return None

            return value

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``."""
        async with self._lock:
            doomed = [key for key in self._store if key.startswith(prefix)]
            for key in doomed:
                del self._store[key]
            return len(doomed)

    async def cleanup_expired(self) -> None:
        """Remove all expired entries from the store."""
        current_time = time.monotonic()
        async with self._lock:
            expired_keys = [
                key
                for key, (_, expires_at) in self._store.items()
                if expires_at is not None and expires_at <= current_time
            ]
            for key in expired_keys:
                del self._store[key]


# =============================================================================
# Single-Flight Lock
# =============================================================================


class SingleFlightLock:
    """
    Distributed lock for cache stampede protection.

    Ensures only one worker refreshes a cache key at a time,
    preventing thundering herd problems during cache misses.
    """

    def __init__(self, client: valkey.Valkey) -> None:
        self._client = client

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        lock_ttl_seconds: int,
        wait_timeout: float,
        retry_delay: float,
    ) -> AsyncIterator[bool]:
        """Acquire a single-flight lock, yielding True if lock was acquired."""
        lock_key = f"lock:{key}"
        deadline = time.monotonic() + wait_timeout
        acquired = False
        owned = False

        try:
            while time.monotonic() < deadline:
                try:
                    owned = bool(
                        await self._client.set(
                            lock_key, "1", nx=True, ex=max(1, int(lock_ttl_seconds))
                        )
                    )
                    acquired = owned
                    if acquired:
                        break
                except Exception:
                    # If Valkey is unavailable, allow the operation to proceed
                    acquired = True
                    break

                await asyncio.sleep(retry_delay)

            yield acquired

        finally:
            if owned:
                try:
                    await self._client.delete(lock_key)
                except Exception:
                    logger.debug("Failed to release cache lock %s", lock_key)


# =============================================================================
# Cache Service
# =============================================================================


class CacheService:
    """
    Cache service with resilience patterns.

    Provides JSON caching with:
    - Primary storage in Valkey
    - Circuit breaker for graceful degradation
    - In-memory fallback during outages
    - Single-flight locking to prevent stampedes

    A prefix delete that cannot reach Valkey stays pending. Keys under a
    pending prefix are never read from Valkey, and pending deletes are
    replayed before the next Valkey read once the breaker closes.
    """

    def __init__(self, client: valkey.Valkey) -> None:
        self._client = client
        self._config = TTLConfig()
        self._circuit_breaker = CircuitBreaker(self._config)
        self._fallback = FallbackCache()
        self._single_flight = SingleFlightLock(client)
        self._pending_prefix_deletes: set[str] = set()

    async def get_json(self, key: str) -> Any | None:
        """Retrieve a JSON document and decode it."""
        await self._replay_pending_prefix_deletes()

        payload = None
        if not self._is_pending_delete(key):
            payload = await self._get_from_valkey(key)
        if payload is not None:
            record_cache_event("json", "hit")
            return json.loads(payload)

        fallback_payload = await self._fallback.get(key)
        if fallback_payload is None:
            record_cache_event("json", "miss")
            return None
        record_cache_event("json", "fallback_hit")
        return json.loads(fallback_payload)

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> None:
        """Serialize and store a JSON-compatible document."""
        encoded = json.dumps(value)
        effective_ttl = self._config.get_effective_ttl(ttl_seconds)

        if not self._is_pending_delete(key):
            await self._set_to_valkey(key, encoded, effective_ttl)

        # Always store in fallback for resilience
        await self._fallback.set(key, encoded, effective_ttl)
        await self._fallback.cleanup_expired()

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every cache entry whose key starts with ``prefix``.

        Returns the number of keys removed from Valkey and the fallback.
        When Valkey cannot be reached the delete is kept pending and
        replayed later.
        """
        removed = 0
        self._pending_prefix_deletes.add(prefix)
        if not self._circuit_breaker.is_open():
            try:
                removed += await self._delete_valkey_prefix(prefix)
                self._pending_prefix_deletes.discard(prefix)
                self._circuit_breaker.close()
            except Exception as exc:
                logger.warning("Prefix delete failed for %s: %s", prefix, exc)
                self._circuit_breaker.open()

        removed += await self._fallback.delete_prefix(prefix)
        record_cache_event("json", "invalidate")
        return removed

    @asynccontextmanager
    async def single_flight(
        self,
        key: str,
        ttl_seconds: int,
        wait_timeout: float,
        retry_delay: float,
    ) -> AsyncIterator[None]:
        """Guard cache miss fills so only one worker refreshes a key."""
        if self._circuit_breaker.is_open():
            yield
            return

        async with self._single_flight.acquire(
            key, ttl_seconds, wait_timeout, retry_delay
        ) as acquired:
            if not acquired:
                raise TimeoutError(
                    f"Timed out while acquiring cache lock for key '{key}'."
                )
            yield

    def _is_pending_delete(self, key: str) -> bool:
        return any(key.startswith(prefix) for prefix in self._pending_prefix_deletes)

    async def _replay_pending_prefix_deletes(self) -> None:
        """Retry prefix deletes that were skipped while Valkey was down."""
        if not self._pending_prefix_deletes or self._circuit_breaker.is_open():
            return

        for prefix in sorted(self._pending_prefix_deletes):
            try:
                removed = await self._delete_valkey_prefix(prefix)
            except Exception as exc:
                logger.warning("Deferred prefix delete failed for %s: %s", prefix, exc)
                self._circuit_breaker.open()
                return
            self._pending_prefix_deletes.discard(prefix)
            record_cache_event("json", "invalidate_replayed")
            logger.info("Replayed prefix delete for %s (%s keys)", prefix, removed)

    async def _delete_valkey_prefix(self, prefix: str) -> int:
        """SCAN and delete ``prefix*`` in batches; errors propagate."""
        removed = 0
        batch: list[str] = []
        async for key in self._client.scan_iter(match=f"{prefix}*", count=500):
            batch.append(key)
            if len(batch) >= 500:
                removed += await self._client.delete(*batch) or 0
                batch = []
        if batch:
            removed += await self._client.delete(*batch) or 0
        return removed

    async def _get_from_valkey(self, key: str) -> str | None:
        """Get value from Valkey with circuit breaker protection."""

        @self._circuit_breaker.protect
        async def _get() -> str | None:
            return await self._client.get(key)

        return await _get()

    async def _set_to_valkey(
        self, key: str, value: str, ttl_seconds: int | None
    ) -> bool:
        """Set value in Valkey with circuit breaker protection."""

        @self._circuit_breaker.protect
        async def _set() -> bool:
            if ttl_seconds and ttl_seconds > 0:
                await self._client.set(key, value, ex=ttl_seconds)
            else:
                await self._client.set(key, value)
            return True

        result = await _set()
        return result is not None


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache
def get_valkey_client() -> valkey.Valkey:
    """Return a shared Valkey client instance."""
    settings = get_settings()
    return valkey.from_url(
        settings.valkey_url,
        encoding="utf-8",
        decode_responses=True,
    )


@lru_cache
def get_cache_service() -> CacheService:
    """Return the process-wide cache service.

    Shared so that the in-memory fallback sees the same invalidations as
    every request handler and the live update job.
    """
    return CacheService(get_valkey_client())


__all__ = ["CacheService", "get_cache_service", "get_valkey_client", "TTLConfig"]
