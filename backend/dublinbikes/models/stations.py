from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from dublinbikes.services.stations import (
    Station,
    StationStatus,
    StationSummary,
    now_epoch_ms,
)


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StationOut(CamelModel):
    number: int
    name: str
    address: str
    latitude: float
    longitude: float
    bike_stands: int
    available_bikes: int
    available_bike_stands: int
    status: StationStatus
    last_update_local: datetime = Field(
        ..., description="Last update converted to Europe/Dublin local time."
    )
    occupancy: float = Field(..., ge=0.0, le=1.0)

    @classmethod
    def from_station(cls, station: Station) -> "StationOut":
        return cls(
            number=station.number,
            name=station.name,
            address=station.address,
            latitude=station.latitude,
            longitude=station.longitude,
            bike_stands=station.bike_stands,
            available_bikes=station.available_bikes,
            available_bike_stands=station.available_bike_stands,
            status=station.status,
            last_update_local=station.last_update_local,
            occupancy=station.occupancy,
        )


class StationIn(CamelModel):
    """Request body for creating or replacing a station.

    ``availableBikeStands`` and ``occupancy`` are derived and ignored.
    """

    number: int = Field(..., ge=0)
    name: str = Field(..., min_length=1)
    address: str = ""
    latitude: float = Field(0.0, ge=-90.0, le=90.0)
    longitude: float = Field(0.0, ge=-180.0, le=180.0)
    bike_stands: int = Field(..., ge=0)
    available_bikes: int = Field(..., ge=0)
    available_bike_stands: int | None = None
    status: StationStatus = StationStatus.OPEN
    last_update_local: datetime | None = None
    occupancy: float | None = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, value: object) -> StationStatus:
        return StationStatus.parse(value)  # type: ignore[arg-type]

    @model_validator(mode="after")
    def validate_availability(self) -> "StationIn":
        if self.available_bikes > self.bike_stands:
            raise ValueError("availableBikes cannot exceed bikeStands")
        return self

    def to_station(self, number: int | None = None) -> Station:
        if self.last_update_local is None:
            epoch_ms = now_epoch_ms()
        else:
            moment = self.last_update_local
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=timezone.utc)
            epoch_ms = int(moment.timestamp() * 1000)
        return Station(
            number=self.number if number is None else number,
            name=self.name,
            address=self.address,
            latitude=self.latitude,
            longitude=self.longitude,
            bike_stands=self.bike_stands,
            available_bikes=self.available_bikes,
            status=self.status,
            last_update_epoch_ms=epoch_ms,
        )


class StationSummaryOut(CamelModel):
    total_stations: int
    total_bike_stands: int
    total_available_bikes: int
    open_stations: int
    closed_stations: int

    @classmethod
    def from_summary(cls, summary: StationSummary) -> "StationSummaryOut":
        return cls(
            total_stations=summary.total_stations,
            total_bike_stands=summary.total_bike_stands,
            total_available_bikes=summary.total_available_bikes,
            open_stations=summary.open_stations,
            closed_stations=summary.closed_stations,
        )


class SeedResult(BaseModel):
    seeded: int = Field(..., description="Number of stations written.")
    message: str
