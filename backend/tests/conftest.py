from __future__ import annotations

import fnmatch
import sys
import time
from pathlib import Path
from typing import AsyncIterator

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from dublinbikes.services.cache import CacheService  # noqa: E402
from dublinbikes.services.stations import Station, StationStatus  # noqa: E402
from tests.station_factories import make_station  # noqa: E402

# Import service availability helpers for use in tests
from tests.service_availability import (  # noqa: E402, F401
    is_postgres_available,
    is_valkey_available,
    requires_postgres,
    requires_valkey,
    skip_if_no_postgres,
    skip_if_no_valkey,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "requires_valkey: skip test if Valkey is not available"
    )
    config.addinivalue_line(
        "markers", "requires_postgres: skip test if PostgreSQL is not available"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


class FakeValkey:
    """In-memory Valkey replacement used for tests."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self.should_fail = False

    def _prune(self) -> None:
        now = time.monotonic()
        expired = [
            key
            for key, (_, expires_at) in self._store.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            self._store.pop(key, None)

    def keys(self) -> list[str]:
        self._prune()
        return sorted(self._store)

    async def get(self, key: str) -> str | None:
        self._prune()
        if self.should_fail:
            raise RuntimeError("valkey unavailable")
        record = self._store.get(key)
        if record is None:
            return None
        value, _ = record
        return value

    async def set(
        self,
        key: str,
        value: str,
        ex: int | None = None,
        nx: bool | None = None,
    ) -> bool:
        self._prune()
        if self.should_fail:
            raise RuntimeError("valkey unavailable")
        if nx:
            # Only set when key does not exist.
            if key in self._store:
                return False
        expires_at = time.monotonic() + ex if ex else None
        self._store[key] = (value, expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        self._prune()
        if self.should_fail:
            raise RuntimeError("valkey unavailable")
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(
        self, match: str | None = None, count: int | None = None
    ) -> AsyncIterator[str]:
        self._prune()
        if self.should_fail:
            raise RuntimeError("valkey unavailable")
        for key in list(self._store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key


@pytest.fixture()
def fake_valkey() -> FakeValkey:
    return FakeValkey()


@pytest.fixture()
def cache_service(fake_valkey: FakeValkey) -> CacheService:
    return CacheService(fake_valkey)


@pytest.fixture()
def sample_stations() -> list[Station]:
    """Three stations with distinct names, availability and status."""
    return [
        make_station(1, "A", bike_stands=20, available_bikes=5),
        make_station(2, "B", bike_stands=10, available_bikes=10),
        make_station(
            3, "C", bike_stands=20, available_bikes=0, status=StationStatus.CLOSED
        ),
    ]
