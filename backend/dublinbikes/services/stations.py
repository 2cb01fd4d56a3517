"""
Station domain model.

Stations are immutable values. Derived attributes (free stands, occupancy,
Dublin local time) are computed on access so they can never drift from the
stored availability numbers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from zoneinfo import ZoneInfo

DUBLIN_TZ = ZoneInfo("Europe/Dublin")


class StationStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

    @classmethod
    def parse(cls, value: "str | StationStatus") -> "StationStatus":
        """Parse a status case-insensitively, raising ValueError if unknown."""
        if isinstance(value, StationStatus):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown station status: {value!r}") from None


def now_epoch_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True, slots=True, kw_only=True)
class Station:
    """A bike-share dock with capacity and live availability."""

    number: int
    name: str
    address: str
    latitude: float
    longitude: float
    bike_stands: int
    available_bikes: int
    status: StationStatus
    last_update_epoch_ms: int

    def __post_init__(self) -> None:
        if self.bike_stands < 0:
            raise ValueError(
                f"Station {self.number}: bike_stands must be >= 0, got {self.bike_stands}"
            )
        if not 0 <= self.available_bikes <= self.bike_stands:
            raise ValueError(
                f"Station {self.number}: available_bikes must be between 0 and "
                f"{self.bike_stands}, got {self.available_bikes}"
            )
        status = StationStatus.parse(self.status)
        if self.bike_stands == 0:
            status = StationStatus.CLOSED
        object.__setattr__(self, "status", status)

    @property
    def id(self) -> str:
        """Document key; always the string form of the station number."""
        return str(self.number)

    @property
    def available_bike_stands(self) -> int:
        return self.bike_stands - self.available_bikes

    @property
    def occupancy(self) -> float:
        if self.bike_stands == 0:
            return 0.0
        return self.available_bikes / self.bike_stands

    @property
    def last_update_utc(self) -> datetime:
        return datetime.fromtimestamp(self.last_update_epoch_ms / 1000, tz=timezone.utc)

    @property
    def last_update_local(self) -> datetime:
        """Last update in Dublin local time, for display only."""
        return self.last_update_utc.astimezone(DUBLIN_TZ)

    def with_availability(
        self,
        *,
        available_bikes: int,
        status: StationStatus,
        last_update_epoch_ms: int,
    ) -> "Station":
        return replace(
            self,
            available_bikes=available_bikes,
            status=status,
            last_update_epoch_ms=last_update_epoch_ms,
        )


@dataclass(frozen=True, slots=True)
class StationSummary:
    """Aggregate view over a full station collection."""

    total_stations: int = 0
    total_bike_stands: int = 0
    total_available_bikes: int = 0
    open_stations: int = 0
    closed_stations: int = 0

    @classmethod
    def from_stations(cls, stations: Iterable[Station]) -> "StationSummary":
        total = stands = bikes = open_count = closed_count = 0
        for station in stations:
            total += 1
            stands += station.bike_stands
            bikes += station.available_bikes
            if station.status is StationStatus.OPEN:
                open_count += 1
            else:
                closed_count += 1
        return cls(
            total_stations=total,
            total_bike_stands=stands,
            total_available_bikes=bikes,
            open_stations=open_count,
            closed_stations=closed_count,
        )


# =============================================================================
# Persisted record mapping (snake_case wire format)
# =============================================================================


def station_from_record(record: Mapping[str, Any]) -> Station:
    """Build a Station from a persisted record.

    ``id`` and ``available_bike_stands`` are derived values and are ignored.
    Raises KeyError, TypeError or ValueError for malformed records.
    """
    position = record.get("position") or {}
    return Station(
        number=int(record["number"]),
        name=str(record.get("name") or ""),
        address=str(record.get("address") or ""),
        latitude=float(position.get("lat", 0.0)),
        longitude=float(position.get("lng", 0.0)),
        bike_stands=int(record["bike_stands"]),
        available_bikes=int(record["available_bikes"]),
        status=StationStatus.parse(record["status"]),
        last_update_epoch_ms=int(record.get("last_update") or 0),
    )


def station_to_record(station: Station) -> dict[str, Any]:
    """Serialize a Station into its persisted record form."""
    return {
        "id": station.id,
        "number": station.number,
        "name": station.name,
        "address": station.address,
        "position": {"lat": station.latitude, "lng": station.longitude},
        "bike_stands": station.bike_stands,
        "available_bikes": station.available_bikes,
        "available_bike_stands": station.available_bike_stands,
        "status": station.status.value,
        "last_update": station.last_update_epoch_ms,
    }


__all__ = [
    "DUBLIN_TZ",
    "Station",
    "StationStatus",
    "StationSummary",
    "now_epoch_ms",
    "station_from_record",
    "station_to_record",
]
