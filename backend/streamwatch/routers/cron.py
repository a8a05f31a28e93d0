"""Cron trigger router for the YouTube poll cycle."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from streamwatch.database import get_db
from streamwatch.middleware.auth import verify_cron_secret
from streamwatch.services.error_tracking import capture_exception
from streamwatch.services.polling_runtime import PollingRuntime, get_polling_runtime

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])

CONFIGURATION_ERROR = {"error": "Server configuration error"}


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


@router.get("/poll-youtube")
def poll_youtube(
    db: Session = Depends(get_db),
    runtime: Optional[PollingRuntime] = Depends(get_polling_runtime)
):
    """
    Run one poll cycle.

    Called every minute by an external scheduler with
    `Authorization: Bearer <CRON_SECRET>`. Individual stream failures are
    counted in the response; only storage or configuration failures return 500.
    """
    if runtime is None:
        logger.error("YOUTUBE_API_KEY is not set; cannot poll")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=CONFIGURATION_ERROR)

    logger.info("Starting YouTube polling job...")

    try:
        result = runtime.run_cycle(db)
    except Exception as e:
        logger.exception("YouTube polling job failed")
        capture_exception(e, tags={"job": "poll-youtube"})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": str(e) or e.__class__.__name__,
                "timestamp": _timestamp()
            }
        )

    return {
        "success": True,
        "polled": result.polled,
        "metricsInserted": result.metrics_written,
        "changesDetected": result.changes_detected,
        "unchanged": result.unchanged,
        "failed": result.failed,
        "quotaExhausted": result.quota_exhausted,
        "timestamp": _timestamp()
    }


@router.get("/quota")
def quota_usage(runtime: Optional[PollingRuntime] = Depends(get_polling_runtime)):
    """Current YouTube quota usage for this process."""
    if runtime is None:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=CONFIGURATION_ERROR)

    return runtime.quota_tracker.usage()
