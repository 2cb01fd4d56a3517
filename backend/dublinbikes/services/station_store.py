"""
Station storage capability and the file-backed implementation.

``StationStore`` is the interface both API versions depend on. The v1 API
is served by ``FileStationStore``: the dataset is read once from JSON into
process memory and every write applies immediately without persistence.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

from dublinbikes.services.station_errors import StationConflictError
from dublinbikes.services.stations import Station, StationSummary, station_from_record

logger = logging.getLogger(__name__)


@runtime_checkable
class StationStore(Protocol):
    """Storage capability shared by every station backend.

    ``list_stations`` returns the full collection ordered by station number.
    """

    async def list_stations(self) -> list[Station]: ...

    async def get_station(self, number: int) -> Station | None: ...

    async def create_station(self, station: Station) -> Station: ...

    async def update_station(self, number: int, station: Station) -> bool: ...

    async def delete_station(self, number: int) -> bool: ...

    async def update_stations(self, stations: Iterable[Station]) -> int: ...

    async def upsert_stations(self, stations: Iterable[Station]) -> int: ...

    async def summary(self) -> StationSummary: ...


def load_stations_file(path: str | Path) -> list[Station]:
    """Read a JSON array of station records.

    Invalid records are skipped with a warning; when a station number appears
    more than once the first record wins.
    """
    data_path = Path(path)
    if not data_path.exists():
        raise FileNotFoundError(f"Station data file not found: {data_path}")

    with data_path.open(encoding="utf-8") as handle:
        records = json.load(handle)
    if not isinstance(records, list):
        raise ValueError(f"Expected a JSON array of stations in {data_path}")

    stations: list[Station] = []
    seen: set[int] = set()
    for index, record in enumerate(records):
        try:
            station = station_from_record(record)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Skipping station record #%s in %s: %s", index, data_path, exc)
            continue
        if station.number in seen:
            logger.warning(
                "Skipping duplicate station %s in %s", station.number, data_path
            )
            continue
        seen.add(station.number)
        stations.append(station)

    logger.info("Loaded %s stations from %s", len(stations), data_path)
    return stations


class FileStationStore:
    """In-memory station collection loaded from a data file."""

    def __init__(self, stations: Iterable[Station] = ()) -> None:
        self._stations: dict[int, Station] = {}
        self._lock = asyncio.Lock()
        for station in stations:
            self._stations.setdefault(station.number, station)

    @classmethod
    def from_file(cls, path: str | Path) -> "FileStationStore":
        return cls(load_stations_file(path))

    def _snapshot(self) -> list[Station]:
        return sorted(self._stations.values(), key=lambda station: station.number)

    async def list_stations(self) -> list[Station]:
        async with self._lock:
            return self._snapshot()

    async def get_station(self, number: int) -> Station | None:
        async with self._lock:
            return self._stations.get(number)

    async def create_station(self, station: Station) -> Station:
        async with self._lock:
            if station.number in self._stations:
                raise StationConflictError(station.number)
            self._stations[station.number] = station
        return station

    async def update_station(self, number: int, station: Station) -> bool:
        async with self._lock:
            if number not in self._stations:
                return False
            if station.number != number:
                station = replace(station, number=number)
            self._stations[number] = station
        return True

    async def delete_station(self, number: int) -> bool:
        async with self._lock:
            return self._stations.pop(number, None) is not None

    async def update_stations(self, stations: Iterable[Station]) -> int:
        updated = 0
        async with self._lock:
            for station in stations:
                if station.number in self._stations:
                    self._stations[station.number] = station
                    updated += 1
        return updated

    async def upsert_stations(self, stations: Iterable[Station]) -> int:
        written = 0
        async with self._lock:
            for station in stations:
                self._stations[station.number] = station
                written += 1
        return written

    async def summary(self) -> StationSummary:
        return StationSummary.from_stations(await self.list_stations())


__all__ = ["FileStationStore", "StationStore", "load_stations_file"]
