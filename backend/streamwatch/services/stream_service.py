"""Stream catalog service: follow/unfollow streams and read chart data."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from streamwatch.analytics.downsample import downsample
from streamwatch.models.stream_models import ChangeEvent, MetricSnapshot, TrackedBroadcast, UserBroadcast
from streamwatch.platforms.youtube.fetcher import BatchFetcher
from streamwatch.platforms.youtube.records import ProviderRecord
from streamwatch.polling.orchestrator import apply_record
from streamwatch.utils.validators import extract_video_id, validate_video_input

logger = logging.getLogger(__name__)

DEFAULT_TIME_RANGE = "7d"
TIME_RANGE_DAYS = {"7d": 7, "14d": 14, "30d": 30}

# add_stream_for_user error messages
ALREADY_MONITORING = "You are already monitoring this stream"
STREAM_NOT_FOUND = "Stream not found on YouTube or API error"
QUOTA_EXHAUSTED = "YouTube API quota exhausted; try again later"
YOUTUBE_NOT_CONFIGURED = "YouTube API is not configured"


def resolve_time_range(time_range: Optional[str], now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """
    Turn a `timeRange` query value into a start timestamp.

    `today` starts at midnight (UTC); `7d`, `14d` and `30d` go back that many
    days; anything else falls back to `7d`.

    Returns:
        Tuple of (effective time range, start of window)
    """
    now = now or datetime.utcnow()

    if time_range == "today":
        return time_range, now.replace(hour=0, minute=0, second=0, microsecond=0)

    if time_range not in TIME_RANGE_DAYS:
        time_range = DEFAULT_TIME_RANGE

    return time_range, now - timedelta(days=TIME_RANGE_DAYS[time_range])


class StreamService:
    """Service for stream catalog operations."""

    @staticmethod
    def get_stream(db: Session, stream_id: UUID) -> Optional[TrackedBroadcast]:
        """Look up a catalog row by internal ID."""
        return db.query(TrackedBroadcast).filter(TrackedBroadcast.id == stream_id).first()

    @staticmethod
    def list_user_streams(db: Session, user_id: str) -> List[TrackedBroadcast]:
        """
        Streams the user follows, most recently added first.

        Args:
            db: Database session
            user_id: Principal ID

        Returns:
            List of TrackedBroadcast rows
        """
        return db.query(TrackedBroadcast).join(
            UserBroadcast, UserBroadcast.stream_id == TrackedBroadcast.id
        ).filter(
            UserBroadcast.user_id == user_id,
            TrackedBroadcast.deleted_at.is_(None)
        ).order_by(UserBroadcast.added_at.desc()).all()

    @staticmethod
    def get_dashboard_stats(db: Session, user_id: str) -> Dict[str, Any]:
        """
        Summary of the caller's monitored streams.

        Live streams come first, then the most recently polled. Each entry
        carries the view count of its latest snapshot (None before the first
        poll or when YouTube hid the statistic).

        Args:
            db: Database session
            user_id: Principal ID

        Returns:
            Dictionary matching DashboardStatsResponse
        """
        latest_views = select(MetricSnapshot.view_count).where(
            MetricSnapshot.stream_id == TrackedBroadcast.id
        ).order_by(MetricSnapshot.recorded_at.desc()).limit(1).correlate(TrackedBroadcast).scalar_subquery()

        rows = db.query(TrackedBroadcast, latest_views.label("view_count")).join(
            UserBroadcast, UserBroadcast.stream_id == TrackedBroadcast.id
        ).filter(
            UserBroadcast.user_id == user_id,
            TrackedBroadcast.deleted_at.is_(None)
        ).order_by(
            TrackedBroadcast.is_live.desc(),
            TrackedBroadcast.last_fetched_at.desc().nulls_last()
        ).all()

        streams = [
            {
                "id": stream.id,
                "youtube_video_id": stream.youtube_video_id,
                "channel_title": stream.channel_title,
                "title": stream.title,
                "thumbnail_url": stream.thumbnail_url,
                "is_live": stream.is_live,
                "current_viewer_count": stream.current_viewer_count,
                "like_count": stream.like_count,
                "view_count": view_count,
                "last_fetched_at": stream.last_fetched_at
            }
            for stream, view_count in rows
        ]

        return {
            "total_monitored": len(streams),
            "live_now": sum(1 for stream in streams if stream["is_live"]),
            "streams": streams
        }

    @staticmethod
    def add_stream_for_user(
        db: Session,
        user_id: str,
        video_id_or_url: str,
        fetcher: Optional[BatchFetcher]
    ) -> Tuple[Optional[TrackedBroadcast], bool, Optional[str]]:
        """
        Start following a stream, registering it in the catalog if unseen.

        An unseen video is fetched once from YouTube; the catalog row is only
        created when that fetch succeeds. If another request registers the
        same video first, the existing row is followed instead.

        Args:
            db: Database session
            user_id: Principal ID
            video_id_or_url: YouTube video ID or URL
            fetcher: Batch fetcher for new registrations (None if YouTube is not configured)

        Returns:
            Tuple of (stream, created, error_message)
        """
        is_valid, error = validate_video_input(video_id_or_url)
        if not is_valid:
            return None, False, error
        video_id = extract_video_id(video_id_or_url)

        created = False
        stream = db.query(TrackedBroadcast).filter(TrackedBroadcast.youtube_video_id == video_id).first()

        if stream is None:
            if fetcher is None:
                return None, False, YOUTUBE_NOT_CONFIGURED

            fetched = fetcher.fetch_by_ids([video_id])
            record = next((r for r in fetched.records if r.video_id == video_id), None)
            if record is None:
                if fetched.quota_exhausted:
                    return None, False, QUOTA_EXHAUSTED
                return None, False, STREAM_NOT_FOUND

            stream, created = StreamService._register(db, video_id, record)

        if not created:
            if stream.deleted_at is not None:
                stream.deleted_at = None
                logger.info(f"Restored stream {video_id}")

            existing = db.query(UserBroadcast).filter(
                UserBroadcast.user_id == user_id,
                UserBroadcast.stream_id == stream.id
            ).first()
            if existing:
                return None, False, ALREADY_MONITORING

        db.add(UserBroadcast(user_id=user_id, stream_id=stream.id))
        try:
            db.commit()
        except IntegrityError:
            # Same user following the same stream from two requests at once
            db.rollback()
            return None, False, ALREADY_MONITORING

        db.refresh(stream)
        return stream, created, None

    @staticmethod
    def _register(db: Session, video_id: str, record: ProviderRecord) -> Tuple[TrackedBroadcast, bool]:
        """Insert a catalog row, or load the row a concurrent request inserted first."""
        now = datetime.utcnow()
        stream = TrackedBroadcast(
            youtube_video_id=video_id,
            channel_id="",
            channel_title="",
            title="",
            is_live=False,
            created_at=now
        )
        apply_record(stream, record, now)
        db.add(stream)

        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info(f"Stream {video_id} was registered concurrently; following the existing row")
            existing = db.query(TrackedBroadcast).filter(TrackedBroadcast.youtube_video_id == video_id).one()
            return existing, False

        logger.info(f"Registered new stream {video_id}")
        return stream, True

    @staticmethod
    def remove_stream_for_user(db: Session, user_id: str, stream_id: UUID) -> Tuple[bool, Optional[str]]:
        """
        Stop following a stream.

        The stream is soft-deleted once nobody follows it, which takes it out
        of the poll rotation. Its history is kept.

        Args:
            db: Database session
            user_id: Principal ID
            stream_id: TrackedBroadcast ID

        Returns:
            Tuple of (success, error_message)
        """
        link = db.query(UserBroadcast).filter(
            UserBroadcast.user_id == user_id,
            UserBroadcast.stream_id == stream_id
        ).first()

        if not link:
            return False, "Stream not found in your monitored list"

        db.delete(link)
        db.flush()

        remaining = db.query(UserBroadcast).filter(UserBroadcast.stream_id == stream_id).count()
        if remaining == 0:
            stream = db.query(TrackedBroadcast).filter(TrackedBroadcast.id == stream_id).first()
            if stream is not None and stream.deleted_at is None:
                stream.deleted_at = datetime.utcnow()
                logger.info(f"Stream {stream.youtube_video_id} has no followers left; soft-deleted")

        db.commit()
        return True, None

    @staticmethod
    def get_metrics(
        db: Session,
        stream_id: UUID,
        time_range: Optional[str] = None,
        max_points: int = 2000,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Chart series for one stream, downsampled to `max_points`.

        Args:
            db: Database session
            stream_id: TrackedBroadcast ID
            time_range: today, 7d, 14d or 30d
            max_points: Maximum points returned
            now: Reference time (defaults to now)

        Returns:
            Dictionary matching StreamMetricsResponse
        """
        effective_range, since = resolve_time_range(time_range, now)

        rows = db.query(
            MetricSnapshot.recorded_at,
            MetricSnapshot.viewer_count,
            MetricSnapshot.like_count,
            MetricSnapshot.view_count
        ).filter(
            MetricSnapshot.stream_id == stream_id,
            MetricSnapshot.recorded_at >= since
        ).order_by(MetricSnapshot.recorded_at).all()

        points = [
            {"timestamp": recorded_at, "viewers": viewers, "likes": likes, "views": views}
            for recorded_at, viewers, likes, views in rows
        ]
        sampled = downsample(points, max_points)

        return {
            "stream_id": stream_id,
            "time_range": effective_range,
            "date_filter": since,
            "data_points": len(sampled),
            "total_points": len(points),
            "metrics": sampled
        }

    @staticmethod
    def get_changes(
        db: Session,
        stream_id: UUID,
        time_range: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Change history for one stream, oldest first.

        Args:
            db: Database session
            stream_id: TrackedBroadcast ID
            time_range: today, 7d, 14d or 30d
            now: Reference time (defaults to now)

        Returns:
            Dictionary matching StreamChangesResponse
        """
        effective_range, since = resolve_time_range(time_range, now)

        events = db.query(ChangeEvent).filter(
            ChangeEvent.stream_id == stream_id,
            ChangeEvent.detected_at >= since
        ).order_by(ChangeEvent.detected_at).all()

        changes = [
            {
                "id": event.id,
                "type": event.change_type.value,
                "old_value": event.old_value,
                "new_value": event.new_value,
                "timestamp": event.detected_at
            }
            for event in events
        ]

        return {
            "stream_id": stream_id,
            "time_range": effective_range,
            "date_filter": since,
            "change_count": len(changes),
            "changes": changes
        }
