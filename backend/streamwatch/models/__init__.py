"""Database models."""

from streamwatch.models.stream_models import (
    ChangeType,
    TrackedBroadcast,
    UserBroadcast,
    MetricSnapshot,
    ChangeEvent,
)

__all__ = ["ChangeType", "TrackedBroadcast", "UserBroadcast", "MetricSnapshot", "ChangeEvent"]
