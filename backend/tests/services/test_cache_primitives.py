"""Unit tests for cache primitives."""

import asyncio
import time
from unittest.mock import Mock, patch

import pytest

from dublinbikes.core.config import Settings
from dublinbikes.services.cache import (
    CircuitBreaker,
    FallbackCache,
    SingleFlightLock,
    TTLConfig,
)


class TestTTLConfig:
    """Tests for TTLConfig."""

    @pytest.fixture
    def mock_settings(self):
        with patch("dublinbikes.services.cache.get_settings") as mock:
            settings = Mock(spec=Settings)
            settings.station_query_cache_ttl_seconds = 300
            settings.cache_circuit_breaker_timeout_seconds = 30
            mock.return_value = settings
            yield settings

    def test_init_reads_settings(self, mock_settings):
        config = TTLConfig()
        assert config.station_query_cache_ttl == 300
        assert config.circuit_breaker_timeout == 30

    def test_get_effective_ttl_returns_default(self, mock_settings):
        assert TTLConfig().get_effective_ttl(None) == 300

    def test_get_effective_ttl_returns_override(self, mock_settings):
        assert TTLConfig().get_effective_ttl(10) == 10

    def test_zero_ttl_means_no_expiry(self, mock_settings):
        assert TTLConfig().get_effective_ttl(0) is None

    def test_negative_ttl_is_rejected(self, mock_settings):
        mock_settings.station_query_cache_ttl_seconds = -1
        with pytest.raises(ValueError):
            TTLConfig()


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    @pytest.fixture
    def breaker(self):
        config = Mock(spec=TTLConfig)
        config.circuit_breaker_timeout = 0.1
        return CircuitBreaker(config)

    def test_initial_state_closed(self, breaker):
        assert not breaker.is_open()

    def test_recovery_timeout(self, breaker):
        breaker.open()
        assert breaker.is_open()
        time.sleep(0.15)
        assert not breaker.is_open()

    @pytest.mark.asyncio
    async def test_protect_returns_none_when_open(self, breaker):
        async def succeed():
            return "success"

        breaker.open()
        assert await breaker.protect(succeed)() is None

    @pytest.mark.asyncio
    async def test_protect_opens_on_exception(self, breaker):
        async def failing():
            raise ValueError("fail")

        assert await breaker.protect(failing)() is None
        assert breaker.is_open()


class TestFallbackCache:
    @pytest.mark.asyncio
    async def test_set_get(self):
        cache = FallbackCache()
        await cache.set("a", "1", ttl_seconds=None)
        assert await cache.get("a") == "1"
        assert await cache.get("b") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self):
        cache = FallbackCache()
        cache._store["a"] = ("1", time.monotonic() - 1)
        cache._store["b"] = ("2", time.monotonic() + 60)
        assert await cache.get("a") is None
        await cache.cleanup_expired()
        assert list(cache._store) == ["b"]

    @pytest.mark.asyncio
    async def test_delete_prefix_only_touches_matching_keys(self):
        cache = FallbackCache()
        await cache.set("stations:v1:query:a", "1", ttl_seconds=None)
        await cache.set("stations:v1:query:b", "2", ttl_seconds=None)
        await cache.set("stations:v2:query:a", "3", ttl_seconds=None)
        assert await cache.delete_prefix("stations:v1:") == 2
        assert await cache.get("stations:v1:query:a") is None
        assert await cache.get("stations:v2:query:a") == "3"


class TestSingleFlightLock:
    @pytest.mark.asyncio
    async def test_lock_key_is_outside_the_cached_namespace(self, fake_valkey):
        lock = SingleFlightLock(fake_valkey)
        async with lock.acquire("stations:v1:query:x", 5, 0.1, 0.01) as acquired:
            assert acquired
            assert fake_valkey.keys() == ["lock:stations:v1:query:x"]
        assert fake_valkey.keys() == []

    @pytest.mark.asyncio
    async def test_second_acquire_times_out_while_held(self, fake_valkey):
        lock = SingleFlightLock(fake_valkey)
        async with lock.acquire("k", 5, 0.1, 0.01) as first:
            assert first
            async with lock.acquire("k", 5, 0.05, 0.01) as second:
                assert not second
            # The waiter must not release a lock it never owned
            assert fake_valkey.keys() == ["lock:k"]

    @pytest.mark.asyncio
    async def test_unavailable_valkey_lets_the_caller_proceed(self, fake_valkey):
        fake_valkey.should_fail = True
        lock = SingleFlightLock(fake_valkey)
        async with lock.acquire("k", 5, 0.1, 0.01) as acquired:
            assert acquired

    @pytest.mark.asyncio
    async def test_waiter_acquires_after_release(self, fake_valkey):
        lock = SingleFlightLock(fake_valkey)
        order: list[str] = []

        async def holder():
            async with lock.acquire("k", 5, 1.0, 0.01):
                order.append("holder")
                await asyncio.sleep(0.05)

        async def waiter():
            await asyncio.sleep(0.01)
            async with lock.acquire("k", 5, 1.0, 0.01) as acquired:
                assert acquired
                order.append("waiter")

        await asyncio.gather(holder(), waiter())
        assert order == ["holder", "waiter"]
