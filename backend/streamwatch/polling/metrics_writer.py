"""Append-only writer for metric snapshots."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from streamwatch.models.stream_models import MetricSnapshot


class MetricsWriter:
    """Stages one MetricSnapshot row per call. Callers own the commit."""

    def append_snapshot(
        self,
        db: Session,
        broadcast_id: UUID,
        viewers: Optional[int],
        likes: Optional[int],
        views: Optional[int],
        at: Optional[datetime] = None
    ) -> MetricSnapshot:
        """
        Stage a snapshot.

        No deduplication: two calls stage two rows. `None` is stored as NULL
        ("no observation"), never as zero.

        Args:
            db: Database session
            broadcast_id: TrackedBroadcast ID
            viewers: Concurrent viewers
            likes: Cumulative likes
            views: Cumulative views
            at: Recording time (defaults to now)

        Returns:
            The staged MetricSnapshot
        """
        snapshot = MetricSnapshot(
            stream_id=broadcast_id,
            viewer_count=viewers,
            like_count=likes,
            view_count=views,
            recorded_at=at or datetime.utcnow()
        )
        db.add(snapshot)
        return snapshot
