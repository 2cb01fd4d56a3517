"""
Simulated live availability feed.

Runs inside the FastAPI application lifespan and, on a fixed interval,
perturbs the available bikes at every station of a backend. This is a
simulation, not a telemetry ingestion path: the random CLOSED flips have no
business meaning.
"""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from dublinbikes.core.config import get_settings
from dublinbikes.core.metrics import record_live_update_tick
from dublinbikes.services.station_service import StationService
from dublinbikes.services.stations import Station, StationStatus, now_epoch_ms

logger = logging.getLogger(__name__)

DEFAULT_CLOSED_PROBABILITY = 0.1
STOP_TIMEOUT_SECONDS = 5.0


def simulate_availability(
    station: Station,
    rng: random.Random,
    now_ms: int,
    closed_probability: float = DEFAULT_CLOSED_PROBABILITY,
) -> Station:
    """Return ``station`` with randomly drifted availability.

    The change per tick is bounded by a quarter of capacity (at least one
    bike) and the result is clamped to ``[0, bike_stands]``.
    """
    max_change = max(1, station.bike_stands // 4)
    delta = rng.randint(-max_change, max_change)
    available = min(max(station.available_bikes + delta, 0), station.bike_stands)

    if station.bike_stands == 0:
        status = StationStatus.CLOSED
    elif rng.random() < closed_probability:
        status = StationStatus.CLOSED
    else:
        status = StationStatus.OPEN

    return station.with_availability(
        available_bikes=available,
        status=status,
        last_update_epoch_ms=now_ms,
    )


class LiveUpdateJob:
    """Background loop applying simulated availability changes to one backend."""

    def __init__(
        self,
        service: StationService,
        *,
        interval_seconds: float | None = None,
        closed_probability: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        settings = get_settings()
        self.service = service
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.live_updates_interval_seconds
        )
        self.closed_probability = (
            closed_probability
            if closed_probability is not None
            else settings.live_updates_closed_probability
        )
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background update loop."""
        if self.running:
            return
        logger.info(
            "Starting live updates for %s every %ss",
            self.service.backend,
            self.interval_seconds,
        )
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._update_loop())

    async def stop(self) -> None:
        """Signal shutdown and wait for an in-flight tick to finish."""
        if self._task is None:
            return
        logger.info("Stopping live updates for %s", self.service.backend)
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=STOP_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(
                "Live update tick for %s did not finish in %ss; cancelling",
                self.service.backend,
                STOP_TIMEOUT_SECONDS,
            )
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_tick(self) -> int:
        """Mutate every station once and invalidate the backend's cache."""
        stations = await self.service.list_all()
        now_ms = now_epoch_ms()
        mutated = [
            simulate_availability(station, self._rng, now_ms, self.closed_probability)
            for station in stations
        ]
        return await self.service.apply_live_update(mutated)

    async def _update_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                updated = await self.run_tick()
                record_live_update_tick(self.service.backend, "success")
                logger.info(
                    "Live update applied to %s stations on %s",
                    updated,
                    self.service.backend,
                )
            except asyncio.CancelledError:
                logger.info("Live update loop for %s cancelled", self.service.backend)
                raise
            except Exception:
                record_live_update_tick(self.service.backend, "error")
                logger.exception(
                    "Live update tick failed for %s; retrying next interval",
                    self.service.backend,
                )

            # Wait for the next tick or shutdown
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds,
                )
                break
            except asyncio.TimeoutError:
                continue


@asynccontextmanager
async def live_update_lifespan_manager(
    services: Sequence[StationService],
) -> AsyncIterator[list[LiveUpdateJob]]:
    """Context manager for live update job lifecycles."""
    settings = get_settings()
    jobs: list[LiveUpdateJob] = []
    if settings.live_updates_enabled:
        jobs = [LiveUpdateJob(service) for service in services]
    else:
        logger.info("Live updates disabled by configuration")

    try:
        for job in jobs:
            await job.start()
        yield jobs
    finally:
        for job in jobs:
            await job.stop()


__all__ = [
    "LiveUpdateJob",
    "live_update_lifespan_manager",
    "simulate_availability",
]
