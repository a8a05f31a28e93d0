"""YouTube API client for fetching live stream data."""

import json
import logging
from typing import Any, Dict, List, Optional

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest

from streamwatch.config import ConfigurationError
from streamwatch.platforms.youtube.exceptions import (
    NotModified,
    ProviderError,
    ProviderServerError,
    QuotaExceededError,
    RateLimitedError,
    VideoNotFoundError,
)

logger = logging.getLogger(__name__)

QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded"}
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}
INVALID_ID_REASONS = {"videoNotFound", "invalidVideoId", "invalidParameter"}


def _error_reasons(error: HttpError) -> List[str]:
    """Collect the `reason` fields from a Google API error body."""
    try:
        payload = json.loads(error.content.decode("utf-8"))
    except (AttributeError, UnicodeDecodeError, ValueError):
        return []

    body = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(body, dict):
        return []

    reasons = []
    for key in ("errors", "details"):
        for entry in body.get(key) or []:
            if isinstance(entry, dict) and entry.get("reason"):
                reasons.append(entry["reason"])
    return reasons


def translate_http_error(error: HttpError) -> Exception:
    """
    Map an HttpError onto the provider error taxonomy.

    Args:
        error: Error raised by googleapiclient

    Returns:
        Exception instance to raise in its place
    """
    status = error.resp.status
    reasons = set(_error_reasons(error))
    reason = next(iter(reasons), None)
    message = str(error)

    if status == 304:
        return NotModified(error.resp.get("etag"))

    if status == 403 and (reasons & QUOTA_REASONS or (not reasons and "quota" in message.lower())):
        return QuotaExceededError(message, status=status, reason=reason)

    if status == 429 or (status == 403 and reasons & RATE_LIMIT_REASONS):
        return RateLimitedError(message, status=status, reason=reason)

    if status >= 500:
        return ProviderServerError(message, status=status, reason=reason)

    if status == 404 or (status == 400 and reasons & INVALID_ID_REASONS):
        return VideoNotFoundError(message, status=status, reason=reason)

    return ProviderError(message, status=status, reason=reason)


class YouTubeAPI:
    """Client for the YouTube Data API v3 `videos.list` endpoint."""

    VIDEO_PARTS = 'snippet,liveStreamingDetails,statistics'
    VIDEOS_LIST_COST = 1  # Quota units per videos.list call

    def __init__(self, api_key: str, timeout: float = 15.0):
        """Initialize the YouTube API client.

        Args:
            api_key: Your YouTube Data API v3 key
            timeout: Socket timeout per request in seconds
        """
        if not api_key:
            raise ConfigurationError("YOUTUBE_API_KEY is not set")

        self.api_key = api_key
        self.timeout = timeout
        self.youtube = build(
            'youtube', 'v3',
            developerKey=api_key,
            requestBuilder=self._build_request,
            cache_discovery=False
        )

    def _build_request(self, http, *args, **kwargs):
        # httplib2.Http is not thread-safe; give every request its own
        return HttpRequest(httplib2.Http(timeout=self.timeout), *args, **kwargs)

    def list_videos(self, video_ids: List[str], etag: Optional[str] = None) -> Dict[str, Any]:
        """Fetch snippet, live details and statistics for up to 50 videos.

        Args:
            video_ids: YouTube video IDs
            etag: Validator from a previous identical request, if any

        Returns:
            Raw response dictionary (`items`, `etag`, ...)

        Raises:
            NotModified: The validator still matches
            ProviderError: Any classified provider failure
        """
        request = self.youtube.videos().list(
            part=self.VIDEO_PARTS,
            id=','.join(video_ids),
            maxResults=len(video_ids)
        )
        if etag:
            request.headers['If-None-Match'] = etag

        try:
            return request.execute()
        except HttpError as e:
            raise translate_http_error(e) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            # Connection resets and timeouts behave like a 5xx
            raise ProviderServerError(f"Transport error: {e}") from e
