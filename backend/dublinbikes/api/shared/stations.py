"""
Station endpoints shared by every API version.

Each version mounts the same routes over a different ``StationService``;
``create_stations_router`` takes the dependency that supplies it.
"""

from typing import Annotated, Callable

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from dublinbikes.models.stations import StationIn, StationOut, StationSummaryOut
from dublinbikes.services.station_errors import (
    StationBackendUnavailableError,
    StationConflictError,
)
from dublinbikes.services.station_query import normalize_query
from dublinbikes.services.station_service import StationService

CACHE_STATUS_HEADER = "X-Cache-Status"


def _not_found(number: int | str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=f"Station {number} not found"
    )


def _parse_number(raw: str) -> int:
    """Station numbers are integers; anything else names no station."""
    try:
        return int(raw)
    except ValueError:
        raise _not_found(raw) from None


def _unavailable(exc: StationBackendUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
    )


def create_stations_router(
    get_service: Callable[[], StationService], *, version: str
) -> APIRouter:
    """Build the station routes for one API version."""
    router = APIRouter()
    ServiceDep = Annotated[StationService, Depends(get_service)]

    # Query values arrive as raw strings; normalization maps malformed input
    # to defaults instead of rejecting the request.
    @router.get(
        "/stations",
        response_model=list[StationOut],
        summary="List stations with filtering, search, sorting and paging",
        name=f"list_stations_{version}",
    )
    async def list_stations(
        response: Response,
        service: ServiceDep,
        status_filter: Annotated[
            str | None,
            Query(alias="status", description="OPEN or CLOSED (case-insensitive)."),
        ] = None,
        min_bikes: Annotated[
            str | None,
            Query(alias="minBikes", description="Minimum available bikes."),
        ] = None,
        search_term: Annotated[
            str | None,
            Query(alias="q", description="Substring of station name or address."),
        ] = None,
        sort: Annotated[
            str | None,
            Query(description="name | availableBikes | occupancy (default: name)."),
        ] = None,
        dir: Annotated[
            str | None, Query(description="asc | desc (default: asc).")
        ] = None,
        page: Annotated[str | None, Query(description="Page number (default: 1).")] = None,
        page_size: Annotated[
            str | None,
            Query(alias="pageSize", description="Page size (default: 20)."),
        ] = None,
    ) -> list[StationOut]:
        query = normalize_query(
            status=status_filter,
            min_bikes=min_bikes,
            search_term=search_term,
            sort=sort,
            dir=dir,
            page=page,
            page_size=page_size,
        )
        try:
            stations, cache_status = await service.query(query)
        except StationBackendUnavailableError as exc:
            raise _unavailable(exc) from exc
        response.headers[CACHE_STATUS_HEADER] = cache_status
        return [StationOut.from_station(station) for station in stations]

    @router.get(
        "/stations/summary",
        response_model=StationSummaryOut,
        summary="Aggregate capacity and availability",
        name=f"station_summary_{version}",
    )
    async def station_summary(service: ServiceDep) -> StationSummaryOut:
        try:
            summary = await service.summary()
        except StationBackendUnavailableError as exc:
            raise _unavailable(exc) from exc
        return StationSummaryOut.from_summary(summary)

    @router.get(
        "/stations/{number}",
        response_model=StationOut,
        summary="Get one station by number",
        name=f"get_station_{version}",
    )
    async def get_station(number: str, service: ServiceDep) -> StationOut:
        station_number = _parse_number(number)
        try:
            station = await service.get(station_number)
        except StationBackendUnavailableError as exc:
            raise _unavailable(exc) from exc
        if station is None:
            raise _not_found(station_number)
        return StationOut.from_station(station)

    @router.post(
        "/stations",
        response_model=StationOut,
        status_code=status.HTTP_201_CREATED,
        summary="Create a station",
        name=f"create_station_{version}",
    )
    async def create_station(
        body: StationIn, response: Response, service: ServiceDep
    ) -> StationOut:
        try:
            station = await service.create(body.to_station())
        except StationConflictError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail=str(exc)
            ) from exc
        except StationBackendUnavailableError as exc:
            raise _unavailable(exc) from exc
        response.headers["Location"] = f"/api/{version}/stations/{station.number}"
        return StationOut.from_station(station)

    @router.put(
        "/stations/{number}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        summary="Replace a station",
        name=f"update_station_{version}",
    )
    async def update_station(
        number: str, body: StationIn, service: ServiceDep
    ) -> Response:
        station_number = _parse_number(number)
        try:
            updated = await service.update(
                station_number, body.to_station(station_number)
            )
        except StationBackendUnavailableError as exc:
            raise _unavailable(exc) from exc
        if not updated:
            raise _not_found(station_number)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.delete(
        "/stations/{number}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        summary="Delete a station",
        name=f"delete_station_{version}",
    )
    async def delete_station(number: str, service: ServiceDep) -> Response:
        station_number = _parse_number(number)
        try:
            deleted = await service.delete(station_number)
        except StationBackendUnavailableError as exc:
            raise _unavailable(exc) from exc
        if not deleted:
            raise _not_found(station_number)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


__all__ = ["CACHE_STATUS_HEADER", "create_stations_router"]
