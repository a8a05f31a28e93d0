"""Normalized view of a `videos.list` item."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Highest resolution first
THUMBNAIL_PRIORITY = ("maxres", "standard", "high", "medium", "default")


def _to_int(value: Any) -> Optional[int]:
    """Counts arrive as strings; missing or garbled values are unknown, not zero."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp into naive UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def select_thumbnail(thumbnails: Optional[Dict[str, Any]]) -> Optional[str]:
    """Pick the highest-resolution thumbnail URL available."""
    if not thumbnails:
        return None
    for size in THUMBNAIL_PRIORITY:
        url = (thumbnails.get(size) or {}).get('url')
        if url:
            return url
    return None


@dataclass(frozen=True)
class ProviderRecord:
    """Fresh provider data for one video. `None` always means "not reported"."""

    video_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    thumbnail_url: Optional[str] = None
    live_broadcast_content: Optional[str] = None
    scheduled_start_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    concurrent_viewers: Optional[int] = None
    like_count: Optional[int] = None
    view_count: Optional[int] = None

    @property
    def is_live(self) -> Optional[bool]:
        """Live flag, or None when the provider omitted the status field."""
        if self.live_broadcast_content is None:
            return None
        return self.live_broadcast_content == 'live'

    @classmethod
    def from_api_item(cls, item: Dict[str, Any]) -> "ProviderRecord":
        """Build a record from a raw `videos.list` item."""
        snippet = item.get('snippet') or {}
        live = item.get('liveStreamingDetails') or {}
        stats = item.get('statistics') or {}

        return cls(
            video_id=item['id'],
            title=snippet.get('title'),
            description=snippet.get('description'),
            channel_id=snippet.get('channelId'),
            channel_title=snippet.get('channelTitle'),
            thumbnail_url=select_thumbnail(snippet.get('thumbnails')),
            live_broadcast_content=snippet.get('liveBroadcastContent'),
            scheduled_start_time=_to_datetime(live.get('scheduledStartTime')),
            actual_start_time=_to_datetime(live.get('actualStartTime')),
            actual_end_time=_to_datetime(live.get('actualEndTime')),
            concurrent_viewers=_to_int(live.get('concurrentViewers')),
            like_count=_to_int(stats.get('likeCount')),
            view_count=_to_int(stats.get('viewCount')),
        )
