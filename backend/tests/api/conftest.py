from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from dublinbikes.main import create_app
from dublinbikes.services.cache import CacheService
from dublinbikes.services.station_query_cache import StationQueryCache
from dublinbikes.services.station_service import (
    StationService,
    get_document_station_service,
    get_file_station_service,
)
from dublinbikes.services.station_store import FileStationStore
from tests.fakes import FakeDocumentRepository, make_document_store


@dataclass
class Backends:
    """Services wired into the test app, one per API version."""

    v1: StationService
    v2: StationService
    v2_repository: FakeDocumentRepository


@pytest.fixture
def backends(cache_service: CacheService, sample_stations) -> Backends:
    document_store, repository, _ = make_document_store(sample_stations)
    return Backends(
        v1=StationService(
            FileStationStore(sample_stations),
            StationQueryCache(cache_service, "v1", ttl_seconds=60),
            backend="v1",
        ),
        v2=StationService(
            document_store,
            StationQueryCache(cache_service, "v2", ttl_seconds=60),
            backend="v2",
        ),
        v2_repository=repository,
    )


@pytest.fixture
def api_client(backends: Backends) -> Iterator[TestClient]:
    # No context manager: the lifespan (dataset load, live updates) stays off
    app = create_app()
    app.dependency_overrides[get_file_station_service] = lambda: backends.v1
    app.dependency_overrides[get_document_station_service] = lambda: backends.v2
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
