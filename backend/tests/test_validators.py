"""
Unit tests for input validators.
"""

import pytest

from streamwatch.utils.validators import extract_video_id, is_valid_video_id, validate_video_input


@pytest.mark.unit
class TestVideoIdExtraction:
    """Test video ID parsing."""

    @pytest.mark.parametrize("value", [
        "dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
        "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ?si=abc",
        "https://www.youtube.com/live/dQw4w9WgXcQ",
        "  dQw4w9WgXcQ  ",
    ])
    def test_supported_formats(self, value):
        assert extract_video_id(value) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize("value", [
        "",
        "short",
        "https://vimeo.com/123456789",
        "https://www.youtube.com/channel/UC1234567890",
    ])
    def test_unrecognised_input(self, value):
        assert extract_video_id(value) is None

    def test_is_valid_video_id(self):
        assert is_valid_video_id("a_b-c1234XY")
        assert not is_valid_video_id("a_b-c1234XY!")
        assert not is_valid_video_id("")

    def test_validate_video_input(self):
        assert validate_video_input("https://youtu.be/dQw4w9WgXcQ") == (True, "")

        is_valid, error = validate_video_input("   ")
        assert not is_valid
        assert "required" in error

        is_valid, error = validate_video_input("not a video")
        assert not is_valid
        assert "Invalid" in error
