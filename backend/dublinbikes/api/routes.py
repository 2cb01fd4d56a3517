from fastapi import APIRouter

from dublinbikes.api.admin import router as admin_router
from dublinbikes.api.health import router as health_router
from dublinbikes.api.v1.routes import router as v1_router
from dublinbikes.api.v2.routes import router as v2_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["meta"])
api_router.include_router(v1_router, prefix="/v1", tags=["stations-v1"])
api_router.include_router(v2_router, prefix="/v2", tags=["stations-v2"])
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
