"""
Station service: the query pipeline in front of one storage backend.

Reads go normalize -> cache -> store -> execute -> cache. Every successful
write invalidates the backend's cache namespace before returning.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Awaitable, Iterable, TypeVar

from dublinbikes.core.config import get_settings
from dublinbikes.core.database import AsyncSessionFactory
from dublinbikes.core.metrics import record_station_operation
from dublinbikes.services.cache import get_cache_service
from dublinbikes.services.document_station_store import DocumentStationStore
from dublinbikes.services.station_errors import (
    StationBackendUnavailableError,
    StationConflictError,
)
from dublinbikes.services.station_query import StationQuery, execute_query
from dublinbikes.services.station_query_cache import StationQueryCache
from dublinbikes.services.station_store import FileStationStore, StationStore
from dublinbikes.services.stations import Station, StationSummary

logger = logging.getLogger(__name__)
T = TypeVar("T")


class StationService:
    """Backend-agnostic station operations for one API version."""

    def __init__(
        self,
        store: StationStore,
        query_cache: StationQueryCache,
        *,
        backend: str,
    ) -> None:
        self.store = store
        self.query_cache = query_cache
        self.backend = backend

    async def query(self, query: StationQuery) -> tuple[tuple[Station, ...], str]:
        """Return ``(page, cache_status)`` for a station listing."""
        normalized = query.normalized()

        async def compute() -> tuple[Station, ...]:
            stations = await self._tracked("list", self.store.list_stations())
            return execute_query(stations, normalized)

        return await self.query_cache.get_or_compute(normalized, compute)

    async def get(self, number: int) -> Station | None:
        return await self._tracked("get", self.store.get_station(number))

    async def summary(self) -> StationSummary:
        return await self._tracked("summary", self.store.summary())

    async def create(self, station: Station) -> Station:
        created = await self._tracked("create", self.store.create_station(station))
        await self.query_cache.invalidate()
        return created

    async def update(self, number: int, station: Station) -> bool:
        updated = await self._tracked(
            "update", self.store.update_station(number, station)
        )
        if updated:
            await self.query_cache.invalidate()
        return updated

    async def delete(self, number: int) -> bool:
        deleted = await self._tracked("delete", self.store.delete_station(number))
        if deleted:
            await self.query_cache.invalidate()
        return deleted

    async def seed(self, stations: Iterable[Station]) -> int:
        written = await self._tracked("seed", self.store.upsert_stations(stations))
        await self.query_cache.invalidate()
        logger.info("Seeded %s stations into %s", written, self.backend)
        return written

    async def list_all(self) -> list[Station]:
        return await self._tracked("list", self.store.list_stations())

    async def apply_live_update(self, stations: Iterable[Station]) -> int:
        """Write a batch of mutated stations and invalidate the namespace."""
        updated = await self._tracked(
            "live_update", self.store.update_stations(stations)
        )
        await self.query_cache.invalidate()
        return updated

    async def _tracked(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            result = await awaitable
        except StationConflictError:
            record_station_operation(self.backend, operation, "conflict")
            raise
        except StationBackendUnavailableError:
            record_station_operation(self.backend, operation, "unavailable")
            raise
        record_station_operation(self.backend, operation, "success")
        return result


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache
def get_file_station_store() -> FileStationStore:
    """Load the v1 dataset once per process."""
    return FileStationStore.from_file(get_settings().stations_data_path)


@lru_cache
def get_document_station_store() -> DocumentStationStore:
    return DocumentStationStore(AsyncSessionFactory)


@lru_cache
def get_file_station_service() -> StationService:
    """FastAPI dependency hook for the file-backed (v1) service."""
    return StationService(
        get_file_station_store(),
        StationQueryCache(get_cache_service(), "v1"),
        backend="v1",
    )


@lru_cache
def get_document_station_service() -> StationService:
    """FastAPI dependency hook for the document-backed (v2) service."""
    return StationService(
        get_document_station_store(),
        StationQueryCache(get_cache_service(), "v2"),
        backend="v2",
    )


def get_station_service(backend: str) -> StationService:
    if backend == "v1":
        return get_file_station_service()
    if backend == "v2":
        return get_document_station_service()
    raise ValueError(f"Unknown station backend: {backend}")


__all__ = [
    "StationService",
    "get_document_station_service",
    "get_document_station_store",
    "get_file_station_service",
    "get_file_station_store",
    "get_station_service",
]
