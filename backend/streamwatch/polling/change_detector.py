"""Detect metadata and live-status changes between two polls."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from streamwatch.models.stream_models import ChangeType, TrackedBroadcast
from streamwatch.platforms.youtube.records import ProviderRecord


@dataclass(frozen=True)
class DetectedChange:
    """A change event ready to be persisted as a ChangeEvent row."""

    change_type: ChangeType
    old_value: Dict[str, Any]
    new_value: Dict[str, Any]
    detected_at: datetime


def present(value: Optional[str]) -> Optional[str]:
    """Treat missing and empty provider strings alike: both mean "unknown"."""
    return value if value else None


def resolve_is_live(previous: bool, fresh: ProviderRecord) -> bool:
    """Fresh live flag, falling back to the previous one when unreported."""
    return previous if fresh.is_live is None else fresh.is_live


def detect_changes(
    previous: TrackedBroadcast,
    fresh: ProviderRecord,
    detected_at: Optional[datetime] = None
) -> List[DetectedChange]:
    """
    Compare the stored broadcast against fresh provider data.

    Pure: reads both arguments, writes nothing. Each rule is independent, so
    one poll can yield several events. A field the provider did not report
    never produces an event.

    Args:
        previous: Last known catalog state
        fresh: Freshly fetched provider record
        detected_at: Timestamp stamped on every event

    Returns:
        List of detected changes (empty when nothing changed)
    """
    at = detected_at or datetime.utcnow()
    changes = []

    text_rules = (
        (ChangeType.TITLE_CHANGED, "title", previous.title, fresh.title),
        (ChangeType.THUMBNAIL_CHANGED, "thumbnail_url", previous.thumbnail_url, fresh.thumbnail_url),
        (ChangeType.DESCRIPTION_CHANGED, "description", previous.description, fresh.description),
    )
    for change_type, field_name, old, new in text_rules:
        new = present(new)
        if new is not None and old != new:
            changes.append(DetectedChange(
                change_type=change_type,
                old_value={field_name: old},
                new_value={field_name: new},
                detected_at=at
            ))

    was_live = bool(previous.is_live)
    is_live = resolve_is_live(was_live, fresh)
    if was_live != is_live:
        changes.append(DetectedChange(
            change_type=ChangeType.WENT_LIVE if is_live else ChangeType.ENDED,
            old_value={"is_live": was_live},
            new_value={"is_live": is_live},
            detected_at=at
        ))

    return changes
