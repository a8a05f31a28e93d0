"""Streams router: monitored list, metadata and chart data."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from streamwatch.config import settings
from streamwatch.database import get_db
from streamwatch.middleware.auth import get_current_user_id
from streamwatch.models.stream_schemas import (
    StreamCreate,
    StreamResponse,
    StreamAddResult,
    DashboardStatsResponse,
    StreamMetricsResponse,
    StreamChangesResponse
)
from streamwatch.services.polling_runtime import PollingRuntime, get_polling_runtime
from streamwatch.services.stream_service import (
    ALREADY_MONITORING,
    QUOTA_EXHAUSTED,
    STREAM_NOT_FOUND,
    YOUTUBE_NOT_CONFIGURED,
    StreamService,
)

router = APIRouter()

CHART_CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=120"

DASHBOARD_CACHE_CONTROL = "private, s-maxage=30, stale-while-revalidate=60"

ADD_ERROR_STATUS = {
    ALREADY_MONITORING: 409,
    STREAM_NOT_FOUND: 404,
    QUOTA_EXHAUSTED: 503,
    YOUTUBE_NOT_CONFIGURED: 500,
}


def _get_stream_or_404(db: Session, stream_id: UUID):
    stream = StreamService.get_stream(db, stream_id)
    if not stream:
        raise HTTPException(status_code=404, detail="Stream not found")
    return stream


# ============================================
# Monitored list
# ============================================

@router.get("", response_model=List[StreamResponse])
def list_streams(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """List the streams the caller is monitoring."""
    return StreamService.list_user_streams(db, user_id)


@router.get("/stats", response_model=DashboardStatsResponse)
def get_dashboard_stats(
    response: Response,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """
    Dashboard summary: how many streams the caller monitors, how many are
    live, and each stream with its latest view count. Live streams first.
    """
    response.headers["Cache-Control"] = DASHBOARD_CACHE_CONTROL
    return StreamService.get_dashboard_stats(db, user_id)


@router.post("", response_model=StreamAddResult, status_code=201)
def add_stream(
    stream_data: StreamCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    runtime: Optional[PollingRuntime] = Depends(get_polling_runtime)
):
    """
    Start monitoring a stream.

    - **videoIdOrUrl**: YouTube video ID, or a watch / youtu.be / live URL

    Unseen videos are fetched from YouTube before they are added to the catalog.
    """
    stream, created, error = StreamService.add_stream_for_user(
        db,
        user_id,
        stream_data.video_id_or_url,
        runtime.fetcher if runtime else None
    )
    if error:
        raise HTTPException(status_code=ADD_ERROR_STATUS.get(error, 400), detail=error)

    return StreamAddResult(stream_id=stream.id, youtube_video_id=stream.youtube_video_id, created=created)


@router.delete("/{stream_id}")
def remove_stream(
    stream_id: UUID,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Stop monitoring a stream."""
    success, error = StreamService.remove_stream_for_user(db, user_id, stream_id)
    if not success:
        raise HTTPException(status_code=404, detail=error)

    return {"success": True, "message": "Stream removed from your monitored list"}


# ============================================
# Stream data
# ============================================

@router.get("/{stream_id}", response_model=StreamResponse)
def get_stream(stream_id: UUID, db: Session = Depends(get_db)):
    """Get stream metadata."""
    return _get_stream_or_404(db, stream_id)


@router.get("/{stream_id}/metrics", response_model=StreamMetricsResponse)
def get_stream_metrics(
    stream_id: UUID,
    response: Response,
    time_range: Optional[str] = Query(None, alias="timeRange", description="today, 7d, 14d or 30d"),
    max_points: int = Query(settings.CHART_MAX_POINTS, alias="maxPoints", ge=2, le=10000),
    db: Session = Depends(get_db)
):
    """
    Time-series metrics for charts.

    Snapshots in the window are downsampled to at most `maxPoints` points;
    `totalPoints` is the raw count. Unknown `timeRange` values fall back to 7d.
    """
    _get_stream_or_404(db, stream_id)

    response.headers["Cache-Control"] = CHART_CACHE_CONTROL
    return StreamService.get_metrics(db, stream_id, time_range, max_points)


@router.get("/{stream_id}/changes", response_model=StreamChangesResponse)
def get_stream_changes(
    stream_id: UUID,
    response: Response,
    time_range: Optional[str] = Query(None, alias="timeRange", description="today, 7d, 14d or 30d"),
    db: Session = Depends(get_db)
):
    """Detected metadata and live-status changes in the window."""
    _get_stream_or_404(db, stream_id)

    response.headers["Cache-Control"] = CHART_CACHE_CONTROL
    return StreamService.get_changes(db, stream_id, time_range)
