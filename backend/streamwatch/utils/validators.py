"""Input validation utilities."""

import re
from typing import Optional, Tuple

VIDEO_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{11}$')
VIDEO_URL_PATTERN = re.compile(
    r'(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/live/)([a-zA-Z0-9_-]{11})'
)


def is_valid_video_id(video_id: str) -> bool:
    """Check that a string looks like a YouTube video ID (11 URL-safe characters)."""
    return bool(video_id) and bool(VIDEO_ID_PATTERN.match(video_id))


def extract_video_id(value: str) -> Optional[str]:
    """
    Extract a YouTube video ID from a bare ID or a video URL.

    Supported formats:
    - dQw4w9WgXcQ
    - https://www.youtube.com/watch?v=dQw4w9WgXcQ
    - https://youtu.be/dQw4w9WgXcQ
    - https://www.youtube.com/live/dQw4w9WgXcQ

    Args:
        value: Video ID or URL

    Returns:
        Video ID, or None if the input is not recognised
    """
    if not value:
        return None

    value = value.strip()
    if is_valid_video_id(value):
        return value

    match = VIDEO_URL_PATTERN.search(value)
    if match:
        return match.group(1)

    return None


def validate_video_input(value: str) -> Tuple[bool, str]:
    """
    Validate a user-supplied video ID or URL.

    Args:
        value: Video ID or URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not value or not value.strip():
        return False, "Video ID or URL is required"

    if len(value) > 2048:
        return False, "Video URL must be less than 2048 characters"

    if extract_video_id(value) is None:
        return False, "Invalid YouTube video ID or URL"

    return True, ""
