"""Pydantic schemas for stream API validation."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime
from uuid import UUID


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Stream Schemas
class StreamCreate(CamelModel):
    """Schema for adding a stream to the caller's monitored list."""
    video_id_or_url: str = Field(..., min_length=1, max_length=2048, description="YouTube video ID or URL")

    @field_validator('video_id_or_url')
    @classmethod
    def strip_input(cls, v):
        """Clean and validate input."""
        value = v.strip()
        if not value:
            raise ValueError('Video ID or URL cannot be empty')
        return value


class StreamResponse(CamelModel):
    """Schema for stream catalog metadata."""
    id: UUID
    youtube_video_id: str
    channel_id: str
    channel_title: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_live: bool
    scheduled_start_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    current_viewer_count: Optional[int] = None
    peak_viewer_count: Optional[int] = None
    like_count: Optional[int] = None
    last_fetched_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class StreamAddResult(CamelModel):
    """Result of adding a stream."""
    success: bool = True
    stream_id: UUID
    youtube_video_id: str
    created: bool


# Dashboard Schemas
class DashboardStream(CamelModel):
    """One row of the dashboard list."""
    id: UUID
    youtube_video_id: str
    channel_title: str
    title: str
    thumbnail_url: Optional[str] = None
    is_live: bool
    current_viewer_count: Optional[int] = None
    like_count: Optional[int] = None
    view_count: Optional[int] = None
    last_fetched_at: Optional[datetime] = None


class DashboardStatsResponse(CamelModel):
    """Summary counts and the monitored list for the dashboard."""
    total_monitored: int
    live_now: int
    streams: List[DashboardStream]


# Chart Schemas
class MetricPoint(CamelModel):
    """One chart point."""
    timestamp: datetime
    viewers: Optional[int] = None
    likes: Optional[int] = None
    views: Optional[int] = None


class StreamMetricsResponse(CamelModel):
    """Downsampled metric series for a time range."""
    stream_id: UUID
    time_range: str
    date_filter: datetime
    data_points: int
    total_points: int
    metrics: List[MetricPoint]


class ChangeEventResponse(CamelModel):
    """One detected change."""
    id: UUID
    type: str
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    timestamp: datetime


class StreamChangesResponse(CamelModel):
    """Change history for a time range."""
    stream_id: UUID
    time_range: str
    date_filter: datetime
    change_count: int
    changes: List[ChangeEventResponse]
