"""Redis-backed cache for chart responses."""

import hashlib
import json
import logging
import time
from typing import Any, Dict, Optional

import redis

from streamwatch.config import settings

logger = logging.getLogger(__name__)

# Seconds to wait after a failed connection before trying again
RECONNECT_INTERVAL_SECONDS = 30.0

_client: Optional[redis.Redis] = None
_next_attempt_at = 0.0


def get_redis_client() -> Optional[redis.Redis]:
    """
    Shared Redis client, connected on first use.

    Returns None when REDIS_URL is empty or Redis is unreachable; the API
    then serves every chart read from the database. After a failed
    connection the next attempt waits RECONNECT_INTERVAL_SECONDS.
    """
    global _client, _next_attempt_at

    if _client is not None:
        return _client

    if not settings.REDIS_URL:
        return None

    now = time.monotonic()
    if now < _next_attempt_at:
        return None

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
    except redis.RedisError as e:
        _next_attempt_at = now + RECONNECT_INTERVAL_SECONDS
        logger.warning(f"Redis unavailable ({e}); chart cache disabled for now")
        return None

    _client = client
    logger.info("Redis connected")
    return _client


def reset_redis_client():
    """Forget the shared client so the next call reconnects."""
    global _client, _next_attempt_at
    _client = None
    _next_attempt_at = 0.0


def is_redis_available() -> bool:
    """Ping the shared client."""
    client = get_redis_client()
    if client is None:
        return False

    try:
        return bool(client.ping())
    except redis.RedisError as e:
        logger.warning(f"Lost Redis connection: {e}")
        reset_redis_client()
        return False


class ChartCache:
    """
    Cached chart responses, one key per stream, view and query string.

    Keys look like `chart:<stream id>:metrics:<query digest>`. Entries simply
    expire; the TTL matches the poll cadence so a cached chart is at most one
    cycle behind.
    """

    def __init__(self, prefix: str = "chart"):
        self.prefix = prefix

    @property
    def client(self) -> Optional[redis.Redis]:
        return get_redis_client()

    def key_for(self, stream_id: str, view: str, query: str = "") -> str:
        digest = hashlib.sha1(query.encode("utf-8")).hexdigest()[:16]
        return f"{self.prefix}:{stream_id}:{view}:{digest}"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Cached entry, or None on a miss or a Redis error."""
        client = self.client
        if client is None:
            return None

        try:
            raw = client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Chart cache read failed: {e}")
            return None

        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable chart cache entry {key}")
            return None

    def set(self, key: str, entry: Dict[str, Any], ttl: int = 60) -> bool:
        client = self.client
        if client is None:
            return False

        try:
            client.setex(key, ttl, json.dumps(entry))
        except redis.RedisError as e:
            logger.warning(f"Chart cache write failed: {e}")
            return False
        return True

    def invalidate_stream(self, stream_id: str) -> int:
        """Drop every cached view of one stream. Returns the number of keys removed."""
        client = self.client
        if client is None:
            return 0

        try:
            keys = list(client.scan_iter(match=f"{self.prefix}:{stream_id}:*"))
            return client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.warning(f"Chart cache invalidation failed: {e}")
            return 0


chart_cache = ChartCache()
