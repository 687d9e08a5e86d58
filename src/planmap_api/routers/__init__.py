"""API routers."""

from planmap_api.routers.capabilities import router as capabilities_router
from planmap_api.routers.editor import router as editor_router
from planmap_api.routers.geo import router as geo_router

__all__ = ["capabilities_router", "editor_router", "geo_router"]
