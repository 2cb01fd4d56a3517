"""Tests for StationService over both backends."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from dublinbikes.services.station_errors import (
    StationBackendUnavailableError,
    StationConflictError,
)
from dublinbikes.services.station_query import normalize_query
from dublinbikes.services.station_query_cache import StationQueryCache
from dublinbikes.services.station_service import StationService
from dublinbikes.services.station_store import FileStationStore
from dublinbikes.services.stations import StationStatus
from tests.fakes import make_document_store
from tests.station_factories import make_station


class CountingStore(FileStationStore):
    """File store that counts full-collection fetches."""

    def __init__(self, stations) -> None:
        super().__init__(stations)
        self.list_calls = 0

    async def list_stations(self):
        self.list_calls += 1
        return await super().list_stations()


def _metric(backend: str, operation: str, result: str) -> float:
    value = REGISTRY.get_sample_value(
        "dublinbikes_station_store_operations_total",
        {"backend": backend, "operation": operation, "result": result},
    )
    return value or 0.0


@pytest.fixture
def scenario_stations():
    return [
        make_station(1, "A", bike_stands=10, available_bikes=2),
        make_station(2, "B", bike_stands=5, available_bikes=5),
        make_station(
            3, "C", bike_stands=0, available_bikes=0, status=StationStatus.CLOSED
        ),
    ]


@pytest.fixture
def counting_store(sample_stations) -> CountingStore:
    return CountingStore(sample_stations)


@pytest.fixture
def file_service(cache_service, counting_store) -> StationService:
    return StationService(
        counting_store,
        StationQueryCache(cache_service, "v1", ttl_seconds=60),
        backend="v1",
    )


def _document_service(cache_service, stations):
    store, repository, _ = make_document_store(stations)
    service = StationService(
        store,
        StationQueryCache(cache_service, "v2", ttl_seconds=60),
        backend="v2",
    )
    return service, repository


def _names(page):
    return [station.name for station in page]


@pytest.mark.asyncio
async def test_identical_queries_fetch_the_backend_once(file_service, counting_store):
    query = normalize_query(sort="occupancy")
    first, first_status = await file_service.query(query)
    second, second_status = await file_service.query(query)

    assert (first_status, second_status) == ("miss", "hit")
    assert first == second
    assert counting_store.list_calls == 1


@pytest.mark.asyncio
async def test_raw_queries_are_normalized_before_caching(file_service, counting_store):
    await file_service.query(normalize_query(status="OPEN"))
    # Same canonical query even though built from an unnormalized value
    _, status = await file_service.query(
        normalize_query(status="OPEN", page="-1").normalized()
    )
    assert status == "hit"
    assert counting_store.list_calls == 1


@pytest.mark.asyncio
async def test_write_between_queries_forces_recompute(file_service, counting_store):
    query = normalize_query()
    await file_service.query(query)

    await file_service.create(make_station(4, "D", available_bikes=3))
    page, status = await file_service.query(query)

    assert status == "miss"
    assert _names(page) == ["A", "B", "C", "D"]
    assert counting_store.list_calls == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "write",
    [
        lambda service: service.update(1, make_station(1, "Z")),
        lambda service: service.delete(2),
        lambda service: service.seed([make_station(9)]),
        lambda service: service.apply_live_update([make_station(1, available_bikes=1)]),
    ],
)
async def test_every_write_invalidates(file_service, write):
    query = normalize_query()
    await file_service.query(query)
    await write(file_service)
    _, status = await file_service.query(query)
    assert status == "miss"


@pytest.mark.asyncio
async def test_missed_update_and_delete_leave_cache_alone(file_service):
    query = normalize_query()
    await file_service.query(query)
    assert await file_service.update(404, make_station(404)) is False
    assert await file_service.delete(404) is False
    _, status = await file_service.query(query)
    assert status == "hit"


@pytest.mark.asyncio
async def test_conflict_propagates_and_is_counted(file_service):
    before = _metric("v1", "create", "conflict")
    with pytest.raises(StationConflictError):
        await file_service.create(make_station(1))
    assert _metric("v1", "create", "conflict") == before + 1


@pytest.mark.asyncio
async def test_get_and_summary(file_service):
    assert (await file_service.get(3)).status is StationStatus.CLOSED
    assert await file_service.get(404) is None
    summary = await file_service.summary()
    assert summary.total_available_bikes == 15


@pytest.mark.asyncio
async def test_unavailable_document_store_propagates(cache_service, sample_stations):
    service, repository = _document_service(cache_service, sample_stations)
    repository.fail_with = ConnectionRefusedError("down")
    before = _metric("v2", "list", "unavailable")
    with pytest.raises(StationBackendUnavailableError):
        await service.query(normalize_query())
    assert _metric("v2", "list", "unavailable") == before + 1


@pytest.mark.asyncio
async def test_v1_and_v2_return_identical_pages(cache_service):
    stations = [
        make_station(n, f"Station {n % 4}", bike_stands=20, available_bikes=n % 7)
        for n in range(1, 30)
    ]
    v1 = StationService(
        FileStationStore(stations),
        StationQueryCache(cache_service, "v1", ttl_seconds=60),
        backend="v1",
    )
    v2, _ = _document_service(cache_service, stations)

    for raw in [
        {},
        {"sort": "availableBikes", "dir": "desc"},
        {"sort": "occupancy", "page": "2", "page_size": "5"},
        {"search_term": "station 3", "min_bikes": "2"},
        {"status": "open", "sort": "name", "dir": "desc", "page_size": "7"},
    ]:
        query = normalize_query(**raw)
        v1_page, _ = await v1.query(query)
        v2_page, _ = await v2.query(query)
        assert v1_page == v2_page


@pytest.mark.asyncio
async def test_three_station_scenario_on_both_backends(
    cache_service, scenario_stations
):
    file_backed = StationService(
        FileStationStore(scenario_stations),
        StationQueryCache(cache_service, "v1", ttl_seconds=60),
        backend="v1",
    )
    document_backed, _ = _document_service(cache_service, scenario_stations)

    for service in (file_backed, document_backed):
        by_bikes, _ = await service.query(
            normalize_query(sort="availableBikes", dir="desc")
        )
        closed, _ = await service.query(normalize_query(status="CLOSED"))
        at_least_three, _ = await service.query(normalize_query(min_bikes="3"))

        assert _names(by_bikes) == ["B", "A", "C"]
        assert _names(closed) == ["C"]
        assert _names(at_least_three) == ["B"]


@pytest.mark.asyncio
async def test_seed_copies_into_document_store(cache_service, sample_stations):
    service, repository = _document_service(cache_service, [])
    assert await service.seed(sample_stations) == 3
    assert sorted(repository.documents) == [1, 2, 3]
    assert await service.list_all() == sample_stations
