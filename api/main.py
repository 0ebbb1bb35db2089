"""
FastAPI application exposing the watcher liveness endpoint.
"""

from datetime import datetime, timezone
from typing import Mapping, Optional

import structlog
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import ErrorResponse, HealthResponse, WatcherHealth
from watcher import __version__
from watcher.health import HealthManager
from watcher.models import ResourceType
from watcher.snapshot_store import SnapshotStore

# Setup logging
logger = structlog.get_logger(__name__)


def create_app(
    health_manager: HealthManager,
    stores: Optional[Mapping[ResourceType, SnapshotStore]] = None,
    debug: bool = False
) -> FastAPI:
    """
    Create the health API bound to a running watcher process.

    Args:
        health_manager: Heartbeat registry shared with the scheduler
        stores: Snapshot stores, reported by size
        debug: Include exception details in 500 responses

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(
        title="Halo Watcher",
        description="Liveness of the Halo announcement, grade and inbox watchers.",
        version=__version__
    )
    stores = stores or {}

    # Exception handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc: HTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=str(exc.detail),
                status_code=exc.status_code
            ).dict(),
            headers=exc.headers
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if debug else None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            ).dict()
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint; degraded when any watcher heartbeat is stale."""
        now = datetime.now(timezone.utc)
        watchers = {
            name: WatcherHealth(**info)
            for name, info in health_manager.status(now).items()
        }
        return HealthResponse(
            status="healthy" if health_manager.all_alive(now) else "degraded",
            timestamp=now,
            version=__version__,
            watchers=watchers,
            snapshots={resource_type.value: len(store) for resource_type, store in stores.items()}
        )

    return app
