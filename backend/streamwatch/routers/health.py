"""Health check and monitoring endpoints."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
from datetime import datetime

from streamwatch.config import settings
from streamwatch.database import get_db
from streamwatch.services.logging_service import app_metrics
from streamwatch.services.polling_runtime import PollingRuntime, get_polling_runtime
from streamwatch.services.redis_service import is_redis_available
from streamwatch.services.scheduler_service import get_job_status

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if application is running.
    Used by load balancers for liveness probes.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.ENVIRONMENT
    }


@router.get("/health/ready")
def readiness_check(
    db: Session = Depends(get_db),
    runtime: Optional[PollingRuntime] = Depends(get_polling_runtime)
):
    """
    Readiness probe.

    The database and the YouTube client are required. Redis and the
    in-process scheduler are only checked when they are enabled.
    """
    checks = {}
    errors = []

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        checks["database"] = False
        errors.append(f"Database: {e}")

    checks["youtube"] = runtime is not None
    if runtime is None:
        errors.append("YouTube: YOUTUBE_API_KEY is not set")

    if settings.REDIS_URL:
        checks["redis"] = is_redis_available()
        if not checks["redis"]:
            errors.append("Redis: Not available")

    if settings.SCHEDULER_ENABLED:
        checks["scheduler"] = get_job_status()["running"]
        if not checks["scheduler"]:
            errors.append("Scheduler: Not running")

    body = {
        "status": "ready" if not errors else "not_ready",
        "checks": checks,
        "quota": runtime.quota_tracker.usage() if runtime else None,
        "timestamp": datetime.utcnow().isoformat()
    }

    if errors:
        body["errors"] = errors
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)

    return body


@router.get("/health/metrics")
async def application_metrics():
    """In-process counters for poll cycles and the response cache."""
    metrics = app_metrics.get_metrics()
    metrics["cache"]["hit_rate"] = round(app_metrics.get_cache_hit_rate(), 2)
    return metrics
