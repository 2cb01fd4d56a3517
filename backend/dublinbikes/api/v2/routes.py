"""Document-store backed station endpoints."""

from dublinbikes.api.shared.stations import create_stations_router
from dublinbikes.services.station_service import get_document_station_service

router = create_stations_router(get_document_station_service, version="v2")
