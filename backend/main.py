"""
FastAPI application entry point for the Sentinel dashboard

Initializes the FastAPI app, registers routers, and runs the detection feed
sync (startup backfill, then the live loop) for the lifetime of the app.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.core.firebase import close_firebase_app
from app.core.logging_config import get_logger, setup_logging
from app.core.metrics import get_content_type, get_metrics, init_metrics
from app.middleware.logging_middleware import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.api.v1.cameras import router as cameras_router
from app.api.v1.faces import router as faces_router
from app.api.v1.organizations import router as organizations_router
from app.api.v1.persons import router as persons_router
from app.api.v1.stats import router as stats_router
from app.api.v1.sync import router as sync_router
from app.services.organization_service import get_organization_service
from app.services.sync_service import get_sync_service, initialize_sync_service, shutdown_sync_service

# Application version
APP_VERSION = "1.0.0"

setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)

init_metrics(version=APP_VERSION)


def ensure_default_organization() -> None:
    """Bootstrap the first organization and API key on an empty database."""
    with SessionLocal() as db:
        organization, api_key = get_organization_service().ensure_default_organization(db)
    if api_key:
        logger.info(
            "Default organization created - SAVE THIS API KEY",
            extra={
                "event_type": "organization_setup",
                "organization_id": organization.id,
                "api_key": api_key,  # Only logged on first creation
            }
        )


async def start_sync() -> None:
    """Backfill recent detections, then follow the feed. Failures are logged, never fatal."""
    if not settings.SYNC_ENABLED:
        logger.info("Detection feed sync disabled", extra={"event_type": "sync_disabled"})
        return
    if not settings.firebase_ready:
        logger.warning(
            "Firebase is not configured; detection feed sync not started",
            extra={"event_type": "sync_unconfigured"}
        )
        return

    try:
        sync_service = initialize_sync_service()
    except Exception as e:
        logger.error(
            f"Failed to initialize detection feed sync: {e}",
            extra={"event_type": "sync_init_error", "error": str(e)},
            exc_info=True,
        )
        return

    # The live loop picks up where the backfill stopped; without one it
    # reads the feed from the start
    watermark = 0.0
    if settings.SYNC_BACKFILL_LIMIT > 0:
        try:
            report = await sync_service.backfill_recent(settings.SYNC_BACKFILL_LIMIT)
            if report.watermark is not None:
                watermark = report.watermark
        except Exception as e:
            logger.error(
                f"Startup backfill failed: {e}",
                extra={"event_type": "backfill_failed", "error": str(e)},
                exc_info=True,
            )

    sync_service.start_live_sync(settings.FIREBASE_LOGS_PATH, watermark=watermark)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.

    - Startup: Creates database tables, bootstraps the default organization,
      starts the detection feed sync
    - Shutdown: Stops the live sync loop and releases the Firebase app
    """
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    Base.metadata.create_all(bind=engine)
    logger.info(
        "Database initialized",
        extra={"event_type": "database_init", "status": "success"}
    )

    ensure_default_organization()
    await start_sync()

    yield

    logger.info("Application shutting down", extra={"event_type": "app_shutdown"})

    try:
        await shutdown_sync_service(timeout=settings.SYNC_SHUTDOWN_TIMEOUT)
    except Exception as e:
        logger.error(
            f"Error stopping detection feed sync: {e}",
            extra={"event_type": "sync_shutdown_error", "error": str(e)}
        )
    close_firebase_app()

    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


app = FastAPI(
    title=settings.APP_NAME,
    description="Person detection dashboard: detection feed sync, visitor statistics and face images",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials="*" not in settings.cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Starlette runs the last added middleware first: logging wraps rate limiting
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(stats_router, prefix=settings.API_PREFIX)
app.include_router(sync_router, prefix=settings.API_PREFIX)
app.include_router(organizations_router, prefix=settings.API_PREFIX)
app.include_router(cameras_router, prefix=settings.API_PREFIX)
app.include_router(faces_router, prefix=settings.API_PREFIX)
app.include_router(persons_router, prefix=settings.API_PREFIX)


@app.get(settings.API_PREFIX)
async def root():
    """Root endpoint - API status check"""
    return {
        "name": settings.APP_NAME,
        "version": APP_VERSION,
        "status": "running"
    }


@app.get(f"{settings.API_PREFIX}/health")
async def health_check():
    """Health check endpoint (no authentication required)"""
    sync_service = get_sync_service()
    return {
        "status": "healthy",
        "sync": {
            "enabled": settings.SYNC_ENABLED,
            "running": bool(sync_service and sync_service.is_running),
            "processed": sync_service.live_stats.processed if sync_service else 0,
            "failed": sync_service.live_stats.failed if sync_service else 0,
        },
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
