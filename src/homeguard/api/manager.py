"""
HomeGuard API - Application Factory

Builds the FastAPI application around one EventPipeline kept on
``app.state.pipeline``.
"""

from typing import Optional
import logging

from fastapi import FastAPI

from .. import __version__
from ..config import build_pipeline
from ..services.event_pipeline import EventPipeline
from .incident_api import incident_router

logger = logging.getLogger(__name__)


def create_app(pipeline: Optional[EventPipeline] = None) -> FastAPI:
    """Create the application. Builds a pipeline from the environment if none is given."""
    app = FastAPI(
        title="HomeGuard Core",
        description="Sensor correlation, incident lifecycle and notification",
        version=__version__,
    )
    app.state.pipeline = pipeline or build_pipeline()
    app.include_router(incident_router)

    @app.on_event("startup")
    async def startup_event():
        logger.info("[STARTUP] HomeGuard Core starting")
        app.state.pipeline.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.pipeline.stop()
        logger.info("[STARTUP] HomeGuard Core stopped")

    return app


# =============================================================================
# FastAPI Application
# =============================================================================

app = create_app()
