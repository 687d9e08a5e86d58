"""PLANMAP - floor plan alignment and annotation.

Main FastAPI application.
"""

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from planmap import __version__
from planmap.config import settings
from planmap.geo.geocode import Geocoder
from planmap.overlay import ImageLoader
from planmap_api.routers import capabilities_router, editor_router, geo_router


def _configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if settings.debug else settings.log_level.upper())


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    _configure_logging()
    logger.info(f"{settings.app_name} v{__version__} - starting")

    app.state.sessions = {}
    app.state.geocoder = Geocoder()
    app.state.image_loader = ImageLoader()
    if settings.export_dir is not None:
        logger.info(f"Exports written to {settings.export_dir}")

    yield

    sessions = app.state.sessions
    for session in list(sessions.values()):
        try:
            session.unmount()
        except Exception as e:
            logger.warning(f"Session {session.session_id} failed to unmount: {e}")
    sessions.clear()
    logger.info(f"{settings.app_name} shutting down...")


# Create FastAPI app
app = FastAPI(
    title="PLANMAP",
    description="Align floor plan images on a map and annotate them",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(editor_router)
app.include_router(geo_router)
app.include_router(capabilities_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "operational",
        "version": __version__,
        "system": settings.app_name,
    }


def run() -> None:
    import uvicorn

    uvicorn.run("planmap_api.main:app", host=settings.host, port=settings.port)
