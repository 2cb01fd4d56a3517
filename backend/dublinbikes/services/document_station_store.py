"""
Document-backed station store used by the v2 API.

Every call opens its own session against the document table. Listing always
reads the whole collection and leaves filtering to the shared query
pipeline, so v1 and v2 answer identical queries identically.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dublinbikes.persistence.repositories import StationDocumentRepository
from dublinbikes.services.station_errors import StationBackendUnavailableError
from dublinbikes.services.stations import (
    Station,
    StationSummary,
    station_from_record,
    station_to_record,
)

logger = logging.getLogger(__name__)

_UNAVAILABLE_ERRORS = (SQLAlchemyError, OSError, TimeoutError)


class DocumentStationStore:
    """Station store persisting one document per station."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_factory: Callable[
            [AsyncSession], StationDocumentRepository
        ] = StationDocumentRepository,
    ) -> None:
        self._session_factory = session_factory
        self._repository_factory = repository_factory

    @asynccontextmanager
    async def _repository(self, operation: str) -> AsyncIterator[StationDocumentRepository]:
        try:
            async with self._session_factory() as session:
                yield self._repository_factory(session)
        except _UNAVAILABLE_ERRORS as exc:
            logger.warning("Document store %s failed: %s", operation, exc)
            raise StationBackendUnavailableError(
                f"Document store unavailable during {operation}."
            ) from exc

    async def list_stations(self) -> list[Station]:
        async with self._repository("list") as repository:
            documents = await repository.list_documents()
        return _decode_documents(documents)

    async def get_station(self, number: int) -> Station | None:
        async with self._repository("get") as repository:
            document = await repository.get_document(number)
        if document is None:
            return None
        return station_from_record(document)

    async def create_station(self, station: Station) -> Station:
        async with self._repository("create") as repository:
            await repository.insert_document(station_to_record(station))
        return station

    async def update_station(self, number: int, station: Station) -> bool:
        record = station_to_record(station)
        record["id"] = str(number)
        record["number"] = number
        async with self._repository("update") as repository:
            return await repository.replace_document(number, record)

    async def delete_station(self, number: int) -> bool:
        async with self._repository("delete") as repository:
            return await repository.delete_document(number)

    async def update_stations(self, stations: Iterable[Station]) -> int:
        records = [station_to_record(station) for station in stations]
        if not records:
            return 0
        async with self._repository("bulk update") as repository:
            return await repository.replace_documents(records)

    async def upsert_stations(self, stations: Iterable[Station]) -> int:
        records = [station_to_record(station) for station in stations]
        async with self._repository("seed") as repository:
            written = await repository.upsert_documents(records)
        logger.info("Upserted %s station documents", written)
        return written

    async def summary(self) -> StationSummary:
        return StationSummary.from_stations(await self.list_stations())


def _decode_documents(documents: Iterable[dict]) -> list[Station]:
    stations: list[Station] = []
    for document in documents:
        try:
            stations.append(station_from_record(document))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Skipping malformed station document %s: %s", document.get("id"), exc
            )
    stations.sort(key=lambda station: station.number)
    return stations


__all__ = ["DocumentStationStore"]
