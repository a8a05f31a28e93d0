"""API routers."""

from streamwatch.routers import cron, streams, health

__all__ = ["cron", "streams", "health"]
