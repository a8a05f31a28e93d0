"""YouTube live stream database models."""

from sqlalchemy import (
    Column, String, Integer, BigInteger, Text, Boolean, DateTime, ForeignKey, Index, JSON, Uuid,
    Enum as SAEnum
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid

from streamwatch.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ChangeType(str, enum.Enum):
    """Kinds of metadata/status changes detected between polls."""
    TITLE_CHANGED = "TITLE_CHANGED"
    THUMBNAIL_CHANGED = "THUMBNAIL_CHANGED"
    DESCRIPTION_CHANGED = "DESCRIPTION_CHANGED"
    WENT_LIVE = "WENT_LIVE"
    ENDED = "ENDED"


class TrackedBroadcast(Base):
    """YouTube live broadcast being tracked (one row per video ID)."""
    __tablename__ = "streams"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    youtube_video_id = Column(String(20), unique=True, nullable=False)
    channel_id = Column(String(30), nullable=False, default="", index=True)
    channel_title = Column(String(255), nullable=False, default="")
    title = Column(Text, nullable=False, default="")
    description = Column(Text)
    thumbnail_url = Column(Text)

    # Stream status
    is_live = Column(Boolean, nullable=False, default=False, index=True)
    scheduled_start_time = Column(DateTime, index=True)
    actual_start_time = Column(DateTime)
    actual_end_time = Column(DateTime)

    # Latest snapshot
    current_viewer_count = Column(Integer)
    peak_viewer_count = Column(Integer)
    like_count = Column(BigInteger)

    # Bookkeeping
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_fetched_at = Column(DateTime)
    deleted_at = Column(DateTime)  # Soft delete

    # Relationships
    metrics = relationship("MetricSnapshot", back_populates="stream", passive_deletes=True)
    changes = relationship("ChangeEvent", back_populates="stream", passive_deletes=True)
    followers = relationship("UserBroadcast", back_populates="stream", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<TrackedBroadcast(video_id='{self.youtube_video_id}', live={self.is_live})>"


class UserBroadcast(Base):
    """Many-to-many link between a user and a broadcast they follow."""
    __tablename__ = "user_streams"

    user_id = Column(String(255), primary_key=True, index=True)
    stream_id = Column(Uuid, ForeignKey("streams.id", ondelete="CASCADE"), primary_key=True, index=True)

    # Alert preferences
    alert_on_live = Column(Boolean, nullable=False, default=True)
    alert_on_scheduled = Column(Boolean, nullable=False, default=False)
    alert_on_ended = Column(Boolean, nullable=False, default=False)

    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    stream = relationship("TrackedBroadcast", back_populates="followers")

    def __repr__(self):
        return f"<UserBroadcast(user_id='{self.user_id}', stream_id={self.stream_id})>"


class MetricSnapshot(Base):
    """Point-in-time measurement of a broadcast. Append-only."""
    __tablename__ = "stream_metrics"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    stream_id = Column(Uuid, ForeignKey("streams.id", ondelete="CASCADE"), nullable=False)

    # NULL means the provider did not report the field
    viewer_count = Column(Integer)
    like_count = Column(BigInteger)
    view_count = Column(BigInteger)

    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    stream = relationship("TrackedBroadcast", back_populates="metrics")

    __table_args__ = (
        Index("stream_metrics_stream_id_recorded_at_idx", "stream_id", "recorded_at"),
    )

    def __repr__(self):
        return f"<MetricSnapshot(stream_id={self.stream_id}, viewers={self.viewer_count})>"


class ChangeEvent(Base):
    """Detected metadata or live-status change. Append-only."""
    __tablename__ = "stream_changes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    stream_id = Column(Uuid, ForeignKey("streams.id", ondelete="CASCADE"), nullable=False)

    change_type = Column(SAEnum(ChangeType, native_enum=False, length=50), nullable=False, index=True)
    old_value = Column(JSONType)
    new_value = Column(JSONType)

    detected_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Flipped by the alerting collaborator
    alerts_sent = Column(Boolean, nullable=False, default=False, index=True)
    alerts_sent_at = Column(DateTime)

    stream = relationship("TrackedBroadcast", back_populates="changes")

    __table_args__ = (
        Index("stream_changes_stream_id_detected_at_idx", "stream_id", "detected_at"),
    )

    def __repr__(self):
        return f"<ChangeEvent(stream_id={self.stream_id}, type={self.change_type})>"
