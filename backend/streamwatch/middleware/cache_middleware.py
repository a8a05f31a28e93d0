"""Response cache for chart reads."""

import re
from typing import Callable, Optional, Pattern

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from streamwatch.services.logging_service import app_metrics
from streamwatch.services.redis_service import ChartCache, chart_cache, is_redis_available

# /api/streams/{id}/metrics and /api/streams/{id}/changes
CHART_PATH = re.compile(r"^/api/streams/(?P<stream_id>[^/]+)/(?P<view>metrics|changes)$")


class CacheMiddleware(BaseHTTPMiddleware):
    """
    Serve chart reads from Redis when possible.

    Only successful GETs on chart paths are stored. Responses carry
    `X-Cache: HIT` or `X-Cache: MISS`. Without Redis every request passes
    straight through.
    """

    def __init__(
        self,
        app,
        default_ttl: int = 60,
        path_pattern: Pattern = CHART_PATH,
        cache: Optional[ChartCache] = None
    ):
        """
        Initialize cache middleware.

        Args:
            app: FastAPI application
            default_ttl: Seconds a cached chart stays valid
            path_pattern: Regex with `stream_id` and `view` groups
            cache: Cache backend (defaults to the shared chart cache)
        """
        super().__init__(app)
        self.default_ttl = default_ttl
        self.path_pattern = path_pattern
        self.cache = cache or chart_cache

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        match = self.path_pattern.match(request.url.path) if request.method == "GET" else None
        # Non-chart routes never touch Redis
        if match is None or not is_redis_available():
            return await call_next(request)

        cache_key = self.cache.key_for(match.group("stream_id"), match.group("view"), request.url.query)
        cached = self.cache.get(cache_key)

        if cached:
            app_metrics.increment_cache(hit=True)
            return Response(
                content=cached["content"],
                status_code=200,
                headers={**cached["headers"], "X-Cache": "HIT"},
                media_type=cached["media_type"]
            )

        app_metrics.increment_cache(hit=False)
        response = await call_next(request)
        if response.status_code != 200:
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        headers = {
            key: value for key, value in response.headers.items()
            if key.lower() != "content-length"
        }
        self.cache.set(
            cache_key,
            {"content": body.decode("utf-8"), "headers": headers, "media_type": response.media_type},
            ttl=self.default_ttl
        )

        return Response(
            content=body,
            status_code=200,
            headers={**headers, "X-Cache": "MISS"},
            media_type=response.media_type
        )
