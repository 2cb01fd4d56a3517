"""File-backed station endpoints."""

from dublinbikes.api.shared.stations import create_stations_router
from dublinbikes.services.station_service import get_file_station_service

router = create_stations_router(get_file_station_service, version="v1")
