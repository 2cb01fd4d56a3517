"""Station store exception definitions.

A missing station is not an error: lookups return ``None`` and updates or
deletes return ``False``.
"""

from __future__ import annotations


class StationStoreError(Exception):
    """Base class for station storage failures."""


class StationConflictError(StationStoreError):
    """Raised when creating a station whose number already exists."""

    def __init__(self, number: int) -> None:
        super().__init__(f"Station {number} already exists.")
        self.number = number


class StationBackendUnavailableError(StationStoreError):
    """Raised when the backing store cannot be reached."""


__all__ = [
    "StationBackendUnavailableError",
    "StationConflictError",
    "StationStoreError",
]
