"""
Unit tests for change detection between polls.
"""

import pytest
from datetime import datetime

from streamwatch.models.stream_models import ChangeType, TrackedBroadcast
from streamwatch.platforms.youtube.records import ProviderRecord
from streamwatch.polling.change_detector import detect_changes, resolve_is_live


def stored(**fields) -> TrackedBroadcast:
    values = {
        "youtube_video_id": "dQw4w9WgXcQ",
        "title": "Morning stream",
        "description": "Coffee and code",
        "thumbnail_url": "https://i.ytimg.com/a.jpg",
        "is_live": False,
    }
    values.update(fields)
    return TrackedBroadcast(**values)


def fresh(**fields) -> ProviderRecord:
    values = {
        "video_id": "dQw4w9WgXcQ",
        "title": "Morning stream",
        "description": "Coffee and code",
        "thumbnail_url": "https://i.ytimg.com/a.jpg",
        "live_broadcast_content": "none",
    }
    values.update(fields)
    return ProviderRecord(**values)


@pytest.mark.unit
class TestDetectChanges:
    """Test change rules."""

    def test_identical_state_yields_nothing(self):
        """Test no spurious changes."""
        assert detect_changes(stored(), fresh()) == []

    def test_title_change(self):
        """Test title change payloads."""
        at = datetime(2026, 3, 1, 12, 0)

        changes = detect_changes(stored(), fresh(title="Evening stream"), detected_at=at)

        assert len(changes) == 1
        change = changes[0]
        assert change.change_type == ChangeType.TITLE_CHANGED
        assert change.old_value == {"title": "Morning stream"}
        assert change.new_value == {"title": "Evening stream"}
        assert change.detected_at == at

    def test_thumbnail_and_description_changes(self):
        """Test several rules fire in one poll."""
        changes = detect_changes(
            stored(),
            fresh(thumbnail_url="https://i.ytimg.com/b.jpg", description="Tea and code")
        )

        types = {c.change_type for c in changes}
        assert types == {ChangeType.THUMBNAIL_CHANGED, ChangeType.DESCRIPTION_CHANGED}

    def test_went_live_exactly_once(self):
        """Test false -> true emits one WENT_LIVE."""
        changes = detect_changes(stored(is_live=False), fresh(live_broadcast_content="live"))

        assert [c.change_type for c in changes] == [ChangeType.WENT_LIVE]
        assert changes[0].old_value == {"is_live": False}
        assert changes[0].new_value == {"is_live": True}

    def test_ended_exactly_once(self):
        """Test true -> false emits one ENDED."""
        changes = detect_changes(stored(is_live=True), fresh(live_broadcast_content="none"))

        assert [c.change_type for c in changes] == [ChangeType.ENDED]

    def test_live_unchanged(self):
        """Test staying live emits nothing."""
        assert detect_changes(stored(is_live=True), fresh(live_broadcast_content="live")) == []

    def test_absent_fields_never_emit(self):
        """Test None and empty strings count as not reported."""
        record = fresh(title=None, description="", thumbnail_url=None, live_broadcast_content=None)

        assert detect_changes(stored(is_live=True), record) == []

    def test_first_value_after_empty_catalog_field(self):
        """Test a description appearing for the first time is a change."""
        changes = detect_changes(stored(description=None), fresh(description="Now with notes"))

        assert [c.change_type for c in changes] == [ChangeType.DESCRIPTION_CHANGED]
        assert changes[0].old_value == {"description": None}


@pytest.mark.unit
def test_resolve_is_live_keeps_previous_when_unreported():
    """Test live status falls back to the stored flag."""
    assert resolve_is_live(True, fresh(live_broadcast_content=None)) is True
    assert resolve_is_live(False, fresh(live_broadcast_content="upcoming")) is False
    assert resolve_is_live(False, fresh(live_broadcast_content="live")) is True
