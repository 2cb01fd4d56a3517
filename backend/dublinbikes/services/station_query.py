"""
Station query pipeline.

Two pieces shared by every storage backend:

- ``normalize_query`` turns untrusted request input into a canonical
  ``StationQuery``. It is total: malformed input falls back to defaults.
- ``execute_query`` applies filter, search, sort and pagination (in that
  order) over an in-memory station collection.

Both are pure. Backends only supply the collection, so the file-backed and
the document-backed APIs return identical pages for identical data.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, Sequence

from dublinbikes.services.stations import Station

SORT_FIELDS = ("name", "availablebikes", "occupancy")
SORT_DIRECTIONS = ("asc", "desc")
DEFAULT_SORT = "name"
DEFAULT_DIRECTION = "asc"
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20


@dataclass(frozen=True, slots=True)
class StationQuery:
    """Canonical query parameters for a station listing."""

    status: str | None = None
    min_bikes: int | None = None
    search_term: str | None = None
    sort: str = DEFAULT_SORT
    dir: str = DEFAULT_DIRECTION
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def descending(self) -> bool:
        return self.dir == "desc"

    def normalized(self) -> "StationQuery":
        return normalize_query(**asdict(self))


def _coerce_int(value: Any) -> int | None:
    """Best-effort integer conversion; returns None when not an integer."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def normalize_query(
    *,
    status: Any = None,
    min_bikes: Any = None,
    search_term: Any = None,
    sort: Any = None,
    dir: Any = None,
    page: Any = None,
    page_size: Any = None,
) -> StationQuery:
    """Coerce raw query input into a valid ``StationQuery``. Never raises."""
    sort_value = str(sort).strip().lower() if sort is not None else DEFAULT_SORT
    if sort_value not in SORT_FIELDS:
        sort_value = DEFAULT_SORT

    dir_value = str(dir).strip().lower() if dir is not None else DEFAULT_DIRECTION
    if dir_value not in SORT_DIRECTIONS:
        dir_value = DEFAULT_DIRECTION

    page_value = _coerce_int(page)
    if page_value is None or page_value <= 0:
        page_value = DEFAULT_PAGE

    page_size_value = _coerce_int(page_size)
    if page_size_value is None or page_size_value <= 0:
        page_size_value = DEFAULT_PAGE_SIZE

    return StationQuery(
        status=_clean_text(status),
        min_bikes=_coerce_int(min_bikes),
        search_term=_clean_text(search_term),
        sort=sort_value,
        dir=dir_value,
        page=page_value,
        page_size=page_size_value,
    )


_SORT_KEYS: dict[str, Callable[[Station], Any]] = {
    "name": lambda station: station.name.casefold(),
    "availablebikes": lambda station: station.available_bikes,
    "occupancy": lambda station: station.occupancy,
}


def _matches_search(station: Station, term: str) -> bool:
    return term in station.name.casefold() or term in station.address.casefold()


def execute_query(
    stations: Iterable[Station], query: StationQuery
) -> tuple[Station, ...]:
    """Filter, search, sort and paginate a station collection.

    Ties in the sort key keep the input order; descending order is the exact
    reverse of ascending order.
    """
    selected: Sequence[Station] = list(stations)

    if query.status and query.status.strip():
        wanted = query.status.strip().casefold()
        selected = [s for s in selected if s.status.value.casefold() == wanted]

    if query.min_bikes is not None:
        selected = [s for s in selected if s.available_bikes >= query.min_bikes]

    if query.search_term and query.search_term.strip():
        term = query.search_term.strip().casefold()
        selected = [s for s in selected if _matches_search(s, term)]

    sort_key = _SORT_KEYS.get(query.sort, _SORT_KEYS[DEFAULT_SORT])
    ordered = [
        station
        for _, _, station in sorted(
            (sort_key(station), index, station)
            for index, station in enumerate(selected)
        )
    ]
    if query.descending:
        ordered.reverse()

    return tuple(ordered[query.offset : query.offset + query.page_size])


__all__ = [
    "DEFAULT_PAGE",
    "DEFAULT_PAGE_SIZE",
    "SORT_DIRECTIONS",
    "SORT_FIELDS",
    "StationQuery",
    "execute_query",
    "normalize_query",
]
