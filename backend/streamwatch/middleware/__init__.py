"""Middleware modules for FastAPI application."""

from streamwatch.middleware.cache_middleware import CacheMiddleware
from streamwatch.middleware.auth import (
    CronAuthError,
    cron_auth_error_handler,
    get_current_user_id,
    verify_cron_secret
)

__all__ = [
    "CacheMiddleware",
    "CronAuthError",
    "cron_auth_error_handler",
    "get_current_user_id",
    "verify_cron_secret"
]
