from contextlib import asynccontextmanager
import logging

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dublinbikes.api.metrics import router as metrics_router
from dublinbikes.api.routes import api_router
from dublinbikes.core.config import get_settings
from dublinbikes.core.database import engine
from dublinbikes.jobs.live_updates import live_update_lifespan_manager
from dublinbikes.services.station_service import (
    get_file_station_store,
    get_station_service,
)

logger = logging.getLogger(__name__)
REQUEST_ID_HEADER = "X-Request-Id"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _configure_sqlalchemy_logging(database_echo: bool) -> None:
    """
    Silence verbose SQLAlchemy logs unless echo is explicitly enabled.

    Engine and pool loggers drop to WARNING by default so document payloads
    only show up when DATABASE_ECHO=true.
    """
    level = logging.INFO if database_echo else logging.WARNING
    for name in (
        "sqlalchemy",
        "sqlalchemy.engine",
        "sqlalchemy.engine.Engine",
        "sqlalchemy.pool",
        "sqlalchemy.pool.impl.AsyncAdaptedQueuePool",
    ):
        sa_logger = logging.getLogger(name)
        sa_logger.setLevel(level)
        sa_logger.propagate = database_echo


def _install_request_id_middleware(app: FastAPI) -> None:
    """Ensure each response includes a stable X-Request-Id header."""

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER, str(uuid4()))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    settings = get_settings()

    # Fail fast on a missing or unreadable dataset instead of on first request
    get_file_station_store()

    services = [get_station_service(name) for name in settings.live_updates_backends]
    async with live_update_lifespan_manager(services):
        yield

    await engine.dispose()


def create_app() -> FastAPI:
    """Application factory for FastAPI."""
    settings = get_settings()
    app = FastAPI(
        title="DublinBikes API",
        description="Dublin bike station availability, served from a file (v1) "
        "or a document store (v2).",
        version="0.1.0",
        lifespan=lifespan,
    )

    _configure_logging(settings.log_level)
    _configure_sqlalchemy_logging(settings.database_echo)
    _install_request_id_middleware(app)

    allow_origins = settings.cors_allow_origins
    allow_origin_regex = settings.cors_allow_origin_regex
    if allow_origins or allow_origin_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_origin_regex=allow_origin_regex,
            allow_credentials=bool(allow_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(metrics_router)
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()
