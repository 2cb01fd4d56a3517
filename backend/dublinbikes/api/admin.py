"""
Administrative endpoints.

``seed-cosmos`` keeps the historical route name from the first document-store
deployment; it copies the v1 dataset into whatever document store v2 uses.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from dublinbikes.models.stations import SeedResult
from dublinbikes.services.station_errors import StationBackendUnavailableError
from dublinbikes.services.station_service import (
    StationService,
    get_document_station_service,
    get_file_station_service,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/seed-cosmos",
    response_model=SeedResult,
    summary="Copy every v1 station into the v2 document store",
)
async def seed_document_store(
    source: Annotated[StationService, Depends(get_file_station_service)],
    target: Annotated[StationService, Depends(get_document_station_service)],
) -> SeedResult:
    try:
        stations = await source.list_all()
        seeded = await target.seed(stations)
    except StationBackendUnavailableError as exc:
        logger.warning("Seeding the document store failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    return SeedResult(seeded=seeded, message=f"Seeded {seeded} stations into Cosmos.")
