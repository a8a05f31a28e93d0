"""
Error tracking with Sentry.

Disabled unless SENTRY_DSN is set; captured exceptions are always written to
the JSON event log.
"""

from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from streamwatch.config import settings
from streamwatch.platforms.youtube.exceptions import ProviderError
from streamwatch.services.logging_service import app_logger

# Requests that should never page anyone
IGNORED_PATHS = ("/health",)


def provider_tags(exception: BaseException) -> Dict[str, str]:
    """Sentry tags describing a YouTube API failure (empty for other errors)."""
    if not isinstance(exception, ProviderError):
        return {}

    tags = {"provider.error": type(exception).__name__}
    if exception.status is not None:
        tags["provider.status"] = str(exception.status)
    if exception.reason:
        tags["provider.reason"] = exception.reason
    return tags


class ErrorTracker:
    """Sentry wrapper shared by the API and the scheduler jobs."""

    def __init__(self, dsn: Optional[str] = None, environment: Optional[str] = None):
        self.sentry_enabled = False
        self.dsn = settings.SENTRY_DSN if dsn is None else dsn
        self.environment = environment or settings.ENVIRONMENT

    def initialize(self):
        """Start the Sentry SDK once, if a DSN is configured."""
        if not self.dsn or self.sentry_enabled:
            return

        try:
            sentry_sdk.init(
                dsn=self.dsn,
                environment=self.environment,
                traces_sample_rate=0.1,
                integrations=[
                    FastApiIntegration(),
                    SqlalchemyIntegration(),
                    RedisIntegration()
                ],
                before_send=self._filter_before_send,
                attach_stacktrace=True,
                send_default_pii=False
            )
        except Exception as e:
            app_logger.error("Failed to initialize Sentry", error=str(e))
            return

        self.sentry_enabled = True
        app_logger.info("Sentry error tracking enabled", environment=self.environment)

    def _filter_before_send(self, event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Drop health probe noise and handled HTTP errors."""
        url = event.get("request", {}).get("url", "")
        if any(path in url for path in IGNORED_PATHS):
            return None

        for exception in event.get("exception", {}).get("values", []):
            if "HTTPException" in exception.get("type", ""):
                return None

        return event

    def capture_exception(
        self,
        exception: BaseException,
        context: Optional[Dict[str, Any]] = None,
        tags: Optional[Dict[str, str]] = None
    ):
        """
        Report an exception.

        Args:
            exception: The exception to report
            context: Extra context blocks, keyed by name
            tags: Searchable tags (YouTube error details are added automatically)
        """
        all_tags = {**provider_tags(exception), **(tags or {})}
        app_logger.error(
            "Exception captured",
            exception_type=type(exception).__name__,
            error=str(exception),
            **all_tags
        )

        if not self.sentry_enabled:
            return

        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_context(key, value)
            for key, value in all_tags.items():
                scope.set_tag(key, value)
            sentry_sdk.capture_exception(exception)

    def capture_message(self, message: str, level: str = "info", tags: Optional[Dict[str, str]] = None):
        """Report a non-exception event, e.g. quota exhaustion."""
        if not self.sentry_enabled:
            return

        with sentry_sdk.new_scope() as scope:
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            sentry_sdk.capture_message(message, level=level)


# Global instance
error_tracker = ErrorTracker()


def capture_exception(exception: BaseException, **kwargs):
    """Report an exception through the global tracker."""
    error_tracker.capture_exception(exception, **kwargs)


def capture_message(message: str, **kwargs):
    """Report a message through the global tracker."""
    error_tracker.capture_message(message, **kwargs)
