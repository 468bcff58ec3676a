"""FastAPI application."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from segscribe.config import settings
from segscribe.database import AsyncSessionLocal, engine
from segscribe.logging_config import get_logger, setup_logging
from segscribe.middleware import RateLimitMiddleware
from segscribe.migrations_utils import check_migration_status, initialize_database
from segscribe.routes import events_router, segments_router
from segscribe.services.events import BroadcastHub, EventNotifier
from segscribe.services.job_queue import TranscriptionJobQueue, recover_interrupted_segments
from segscribe.services.provider import TranscriptionProviderClient
from segscribe.services.sweeper import ResubmissionSweeper
from segscribe.services.worker import TranscriptionWorker
from segscribe.storage.blob_store import LocalBlobStore

logger = get_logger("main")

_UPLOAD_VALIDATION_PATHS: set[tuple[str, str]] = {("POST", "/speech-segments")}


@dataclass
class Pipeline:
    """Collaborators wired together for one application instance."""

    blob_store: LocalBlobStore
    hub: BroadcastHub
    worker: TranscriptionWorker
    queue: TranscriptionJobQueue
    sweeper: ResubmissionSweeper


def build_pipeline(
    *,
    session_factory=AsyncSessionLocal,
    blob_store: Optional[LocalBlobStore] = None,
    provider: Optional[TranscriptionProviderClient] = None,
    hub: Optional[BroadcastHub] = None,
    notifier: Optional[EventNotifier] = None,
) -> Pipeline:
    blob_store = blob_store or LocalBlobStore(settings.blob_storage_path)
    hub = hub or BroadcastHub()
    worker = TranscriptionWorker(
        session_factory,
        blob_store,
        provider or TranscriptionProviderClient.from_settings(),
        notifier or hub,
        blob_check_timeout=settings.blob_check_timeout_seconds,
    )
    queue = TranscriptionJobQueue(worker, concurrency=settings.max_concurrent_jobs)
    sweeper = ResubmissionSweeper(
        session_factory,
        queue,
        page_size=settings.resubmit_page_size,
        max_attempts=settings.resubmit_max_attempts,
    )
    return Pipeline(blob_store, hub, worker, queue, sweeper)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    pipeline: Pipeline = app.state.pipeline
    logger.info("Starting segscribe (environment: %s)", settings.environment)

    current_rev, head_rev = await check_migration_status(engine)
    logger.info("Database migration status: %s (head: %s)", current_rev, head_rev)
    if settings.is_production:
        if current_rev != head_rev:
            logger.warning(
                "Database migrations are not up to date. "
                "Run 'alembic upgrade head' before starting in production."
            )
    else:
        await initialize_database(engine)

    await pipeline.queue.start()
    failed, requeued = await recover_interrupted_segments(pipeline.queue, AsyncSessionLocal)
    if failed or requeued:
        logger.info(
            "Recovered %s interrupted and requeued %s pending segment(s)", failed, requeued
        )

    if settings.enable_sweeper:
        pipeline.sweeper.start(settings.resubmit_interval_seconds)

    yield

    logger.info("Shutting down segscribe")
    await pipeline.sweeper.stop()
    await pipeline.queue.stop()


def create_app(pipeline: Optional[Pipeline] = None) -> FastAPI:
    setup_logging()
    pipeline = pipeline or build_pipeline()

    app = FastAPI(
        title="segscribe",
        description="Speech segment upload and asynchronous transcription",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.blob_store = pipeline.blob_store
    app.state.queue = pipeline.queue
    app.state.hub = pipeline.hub
    app.state.sweeper = pipeline.sweeper

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        if (request.method.upper(), route_path) in _UPLOAD_VALIDATION_PATHS:
            return JSONResponse(
                status_code=422,
                content={"success": False, "message": "The audio field is required."},
            )
        return await request_validation_exception_handler(request, exc)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if not settings.is_testing:
        app.add_middleware(
            RateLimitMiddleware,
            exclude_paths=["/health", "/docs", "/openapi.json", "/redoc", "/ws"],
        )

    app.include_router(segments_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint with database status."""
        db_status = "unknown"
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "healthy"
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            db_status = "unhealthy"

        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "version": "0.1.0",
            "environment": settings.environment,
            "database": db_status,
            "queue": "running" if pipeline.queue.started else "stopped",
            "subscribers": pipeline.hub.connection_count,
        }

    return app
