"""Error taxonomy for YouTube Data API calls."""

from typing import Optional


class ProviderError(Exception):
    """Unclassified provider failure. Logged and dropped for the cycle."""

    retryable = False

    def __init__(self, message: str, status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.reason = reason


class QuotaExceededError(ProviderError):
    """Daily quota is spent. No further requests this billing day."""


class RateLimitedError(ProviderError):
    """Short-term rate limit hit."""

    retryable = True


class ProviderServerError(ProviderError):
    """5xx from the provider."""

    retryable = True


class VideoNotFoundError(ProviderError):
    """Requested IDs are unknown or malformed."""


class NotModified(Exception):
    """The conditional request matched the cached validator (HTTP 304)."""

    def __init__(self, etag: Optional[str] = None):
        super().__init__("Not modified")
        self.etag = etag
