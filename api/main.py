"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, stats, sync
from api.dependencies import run_history, run_lock
from core.config import settings
from core.exceptions import SyncException, SyncInProgress
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import SyncScheduler

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Search Console Sync API",
    description="Incremental Search Console to analytical table sync service",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Scheduler shares the run history and the run lock with the API
scheduler = SyncScheduler(settings, history=run_history, lock=run_lock)


# Include routers
app.include_router(health.router)
app.include_router(stats.router)
app.include_router(sync.router)


@app.exception_handler(SyncInProgress)
async def sync_in_progress_handler(request: Request, exc: SyncInProgress):
    """Overlapping trigger; Pub/Sub retries non-2xx responses later"""
    logger.warning(f"Sync rejected: {exc.message}")
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.exception_handler(SyncException)
async def sync_exception_handler(request: Request, exc: SyncException):
    """Run-level failures become a 500 with structured context"""
    logger.error(f"Request failed: {exc.message}", extra={"error_context": exc.to_dict()})
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Search Console Sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Sink backend: {settings.SINK_BACKEND}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Search Console Sync API")
    if settings.SCHEDULER_ENABLED:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Search Console Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sync": "/sync",
            "stats": "/stats"
        }
    }
