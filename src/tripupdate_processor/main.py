"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request

from tripupdate_processor.config import get_settings
from tripupdate_processor.logging import get_logger, request_context, setup_logging
from tripupdate_processor.services.broker.worker import get_worker, reset_worker

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    logger.info("Starting TripUpdate processor")

    settings = get_settings()
    if settings.processor_auto_start:
        worker = get_worker()
        await worker.start()

    yield

    worker = get_worker()
    if worker.is_running:
        await worker.stop()
    reset_worker()

    logger.info("Shutting down TripUpdate processor")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Converts back-office stop estimates and trip cancellations "
            "into GTFS-Realtime TripUpdates"
        ),
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        with request_context(request_id=request_id, path=request.url.path):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.get("/health", tags=["meta"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint returning processor status."""
        settings = get_settings()
        missing_env = settings.missing_required_env()

        worker = get_worker()
        worker_status = await worker.get_status()
        processor_healthy = worker_status["running"] or not settings.processor_auto_start

        status = (
            "unhealthy" if missing_env else "healthy" if processor_healthy else "degraded"
        )

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))
        if settings.processor_auto_start and not worker_status["running"]:
            issues.append("TripUpdate processor is not running")

        return {
            "service": settings.app_name,
            "status": status,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "broker": worker_status["broker_connected"],
                "processor": {
                    "running": worker_status["running"],
                    "received": worker_status["received"],
                    "published": worker_status["published"],
                    "failed": worker_status["failed"],
                    "trackedTrips": worker_status["tracked_trips"],
                },
            },
            "issues": issues,
        }

    @app.get("/meta/processor", tags=["meta"])
    async def processor_status() -> dict[str, Any]:
        """Detailed worker counters."""
        return await get_worker().get_status()

    return app


app = create_app()
