"""Main FastAPI application for the Recurrence Service."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from recurrence_service import __version__
from recurrence_service.config import Settings, load_settings
from recurrence_service.dapr.client import DaprEventPublisher
from recurrence_service.db.config import create_db_engine
from recurrence_service.db.init import check_db, init_db
from recurrence_service.domain.errors import RecurrenceError
from recurrence_service.middleware.cors import add_cors_middleware
from recurrence_service.routers import events, recurrence
from recurrence_service.services.recurrence_poller import RecurrencePoller
from recurrence_service.services.recurrence_service import RecurrenceService
from recurrence_service.services.recurrence_store import RecurrenceStore
from recurrence_service.services.task_generator import TaskGenerator
from recurrence_service.services.trigger_coordinator import RecurrenceTriggerCoordinator
from recurrence_service.utils import metrics as metric_names
from recurrence_service.utils.logger import configure_logging
from recurrence_service.utils.metrics import MetricsCollector

logger = logging.getLogger(__name__)

VERSION = __version__


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    task_generator: Optional[TaskGenerator] = None,
    publisher: Optional[DaprEventPublisher] = None,
) -> FastAPI:
    """
    Build the application and wire its components.

    Components are created here and held on `app.state`; nothing is a module
    level singleton. Any of the collaborators can be supplied instead.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    engine = engine or create_db_engine(settings.database_url)
    store = RecurrenceStore(engine)
    metrics = MetricsCollector()

    http_client: Optional[httpx.AsyncClient] = None
    if task_generator is None:
        http_client = httpx.AsyncClient(timeout=settings.task_service_timeout_seconds)
        task_generator = TaskGenerator(http_client, settings.dapr_base_url, settings.task_service_app_id)

    if publisher is None:
        publisher = DaprEventPublisher(
            pubsub_name=settings.pubsub_name,
            enabled=settings.dapr_enabled,
            dapr_address=settings.dapr_grpc_address,
        )

    coordinator = RecurrenceTriggerCoordinator(
        store,
        task_generator,
        publisher,
        metrics,
        claim_timeout_seconds=settings.claim_timeout_seconds,
    )
    poller = RecurrencePoller(
        store,
        coordinator,
        metrics,
        interval_seconds=settings.poll_interval_seconds,
        batch_size=settings.poll_batch_size,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        if settings.enable_scheduler:
            poller.start()
        else:
            logger.info("Recurrence poller disabled (ENABLE_SCHEDULER=false)")
        logger.info("Recurrence service startup complete.")

        yield

        await poller.stop()
        if http_client is not None:
            await http_client.aclose()
        logger.info("Recurrence service shut down.")

    app = FastAPI(
        title="Recurrence Service",
        description="Recurring task patterns: schedules, triggers and next-instance generation",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.store = store
    app.state.metrics = metrics
    app.state.publisher = publisher
    app.state.task_generator = task_generator
    app.state.coordinator = coordinator
    app.state.poller = poller
    app.state.recurrence_service = RecurrenceService(store, publisher, coordinator)

    add_cors_middleware(app, settings)

    @app.exception_handler(RecurrenceError)
    async def recurrence_error_handler(request: Request, exc: RecurrenceError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        metrics.increment_counter(metric_names.ERRORS)
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "recurrence-service", "version": VERSION}

    @app.get("/ready")
    async def readiness_check():
        """Readiness check: the database must answer."""
        if not check_db(engine):
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not ready", "database": "unavailable"},
            )
        return {"status": "ready", "database": "ok", "scheduler": poller.is_started}

    @app.get("/metrics")
    async def get_metrics():
        return metrics.get_metrics()

    @app.get("/")
    async def root():
        """Root endpoint - service welcome message."""
        return {
            "message": "Recurrence Service",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(recurrence.router)
    app.include_router(events.router)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "recurrence_service.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=load_settings().port,
    )
