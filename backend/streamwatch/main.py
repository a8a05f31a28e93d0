"""FastAPI main application."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from streamwatch.config import ConfigurationError, settings
from streamwatch.database import init_db

# Import routers
from streamwatch.routers import cron, streams, health

# Import middlewares
from streamwatch.middleware import CacheMiddleware, CronAuthError, cron_auth_error_handler
from streamwatch.services.error_tracking import error_tracker
from streamwatch.services.logging_service import configure_logging
from streamwatch.services.polling_runtime import build_polling_runtime

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="StreamWatch API",
    description="YouTube live stream monitoring: polling, metrics history and change detection",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Built on startup; None until then or when YOUTUBE_API_KEY is missing
app.state.polling_runtime = None

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Cache chart reads in Redis (no-op without REDIS_URL)
app.add_middleware(
    CacheMiddleware,
    default_ttl=settings.METRICS_CACHE_TTL_SECONDS
)

app.add_exception_handler(CronAuthError, cron_auth_error_handler)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    error_tracker.initialize()

    # Initialize database (create tables if they don't exist)
    init_db()

    try:
        app.state.polling_runtime = build_polling_runtime(settings)
    except ConfigurationError as e:
        logger.error(f"Polling disabled: {e}")
        app.state.polling_runtime = None

    if settings.SCHEDULER_ENABLED and app.state.polling_runtime is not None:
        from streamwatch.services.scheduler_service import start_scheduler
        start_scheduler(app.state.polling_runtime)

    logger.info(f"StreamWatch API started (environment: {settings.ENVIRONMENT})")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown."""
    runtime = getattr(app.state, "polling_runtime", None)
    if runtime is not None:
        runtime.cancel()

    from streamwatch.services.scheduler_service import shutdown_scheduler
    shutdown_scheduler()

    logger.info("StreamWatch API shutting down...")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "StreamWatch API",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.ENVIRONMENT,
        "documentation": "/docs"
    }


# Include routers
app.include_router(health.router, tags=["Health & Monitoring"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
app.include_router(streams.router, prefix="/api/streams", tags=["Streams"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "streamwatch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
