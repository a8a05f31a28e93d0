"""
Tests for the runtime, scheduler jobs, chart cache and error tracking.
"""

import threading
import pytest
import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from streamwatch.config import ConfigurationError, settings
from streamwatch.middleware.cache_middleware import CacheMiddleware
from streamwatch.platforms.youtube.exceptions import QuotaExceededError
from streamwatch.platforms.youtube.fetcher import BatchFetcher
from streamwatch.platforms.youtube.quota import QuotaTracker
from streamwatch.polling.orchestrator import PollCycleResult
from streamwatch.services import redis_service, scheduler_service
from streamwatch.services.error_tracking import ErrorTracker, provider_tags
from streamwatch.services.logging_service import ApplicationMetrics
from streamwatch.services.polling_runtime import PollingRuntime, build_polling_runtime
from streamwatch.services.redis_service import ChartCache


class DictChartCache(ChartCache):
    """ChartCache backed by a dict instead of Redis."""

    def __init__(self):
        super().__init__()
        self.entries = {}

    def get(self, key):
        return self.entries.get(key)

    def set(self, key, entry, ttl=60):
        self.entries[key] = entry
        return True


@pytest.fixture
def cached_app(monkeypatch):
    monkeypatch.setattr("streamwatch.middleware.cache_middleware.is_redis_available", lambda: True)
    cache = DictChartCache()
    calls = {"count": 0}

    app = FastAPI()
    app.add_middleware(CacheMiddleware, cache=cache)

    @app.get("/api/streams/{stream_id}/metrics")
    def metrics(stream_id: str):
        calls["count"] += 1
        return {"streamId": stream_id, "n": calls["count"]}

    @app.get("/api/streams/{stream_id}")
    def stream(stream_id: str):
        calls["count"] += 1
        return {"streamId": stream_id}

    return TestClient(app), cache, calls


@pytest.mark.unit
class TestCacheMiddleware:
    """Test chart response caching."""

    def test_miss_then_hit(self, cached_app):
        client, cache, calls = cached_app

        first = client.get("/api/streams/abc/metrics?timeRange=7d")
        second = client.get("/api/streams/abc/metrics?timeRange=7d")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == first.json()
        assert calls["count"] == 1
        assert list(cache.entries)[0].startswith("chart:abc:metrics:")

    def test_query_string_is_part_of_key(self, cached_app):
        client, cache, calls = cached_app

        client.get("/api/streams/abc/metrics?timeRange=7d")
        client.get("/api/streams/abc/metrics?timeRange=30d")

        assert calls["count"] == 2
        assert len(cache.entries) == 2

    def test_other_routes_bypass_cache(self, cached_app):
        client, cache, calls = cached_app

        response = client.get("/api/streams/abc")

        assert "X-Cache" not in response.headers
        assert cache.entries == {}

    def test_key_layout(self):
        cache = ChartCache()

        key = cache.key_for("abc", "changes", "timeRange=today")

        assert key.startswith("chart:abc:changes:")
        assert key == cache.key_for("abc", "changes", "timeRange=today")
        assert key != cache.key_for("abc", "changes", "timeRange=7d")


@pytest.mark.unit
class TestErrorTracking:
    """Test Sentry filtering and tags."""

    def test_provider_tags(self):
        tags = provider_tags(QuotaExceededError("quota", status=403, reason="quotaExceeded"))

        assert tags == {
            "provider.error": "QuotaExceededError",
            "provider.status": "403",
            "provider.reason": "quotaExceeded",
        }
        assert provider_tags(ValueError("x")) == {}

    def test_health_events_dropped(self):
        tracker = ErrorTracker(dsn="")

        assert tracker._filter_before_send({"request": {"url": "http://api/health/ready"}}, {}) is None

    def test_http_exceptions_dropped(self):
        tracker = ErrorTracker(dsn="")
        event = {"exception": {"values": [{"type": "HTTPException"}]}}

        assert tracker._filter_before_send(event, {}) is None

    def test_other_events_kept(self):
        tracker = ErrorTracker(dsn="")
        event = {"exception": {"values": [{"type": "OperationalError"}]}}

        assert tracker._filter_before_send(event, {}) is event

    def test_disabled_without_dsn(self):
        tracker = ErrorTracker(dsn="")
        tracker.initialize()

        assert tracker.sentry_enabled is False
        tracker.capture_exception(RuntimeError("boom"))


@pytest.mark.unit
class TestApplicationMetrics:
    """Test in-process counters."""

    def test_poll_cycle_totals(self):
        metrics = ApplicationMetrics()

        metrics.record_poll_cycle(PollCycleResult(polled=3, metrics_written=2, changes_detected=1, failed=1))
        metrics.record_poll_cycle(None)

        cycles = metrics.get_metrics()["poll_cycles"]
        assert cycles["total_runs"] == 2
        assert cycles["successful_runs"] == 1
        assert cycles["failed_runs"] == 1
        assert cycles["snapshots_written"] == 2
        assert cycles["streams_failed"] == 1

    def test_cache_hit_rate(self):
        metrics = ApplicationMetrics()
        assert metrics.get_cache_hit_rate() == 0.0

        metrics.increment_cache(hit=True)
        metrics.increment_cache(hit=True)
        metrics.increment_cache(hit=False)

        assert round(metrics.get_cache_hit_rate(), 2) == 66.67

    def test_snapshot_is_a_copy(self):
        metrics = ApplicationMetrics()

        metrics.get_metrics()["cache"]["hits"] = 99

        assert metrics.get_metrics()["cache"]["hits"] == 0


@pytest.mark.unit
class TestPollingRuntime:
    """Test runtime construction and cycle serialization."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "YOUTUBE_API_KEY", "")

        with pytest.raises(ConfigurationError):
            build_polling_runtime(settings)

    def test_overlapping_cycle_skipped(self, polling_runtime, fake_api):
        """Test a cycle started while another holds the lock does nothing."""
        polling_runtime.cycle_lock.acquire()
        try:
            result = polling_runtime.run_cycle(MagicMock())
        finally:
            polling_runtime.cycle_lock.release()

        assert result == PollCycleResult()
        assert fake_api.calls == []

    def test_quota_exhaustion_logged_and_reported(self, polling_runtime, test_db, make_broadcast):
        make_broadcast("dQw4w9WgXcQ", is_live=True)
        polling_runtime.quota_tracker.mark_exhausted()

        with patch("streamwatch.services.polling_runtime.app_logger") as logger, \
                patch("streamwatch.services.polling_runtime.capture_message") as capture:
            result = polling_runtime.run_cycle(test_db)

        assert result.quota_exhausted is True
        message, = logger.warning.call_args.args
        assert message == "quota_exhausted"
        assert logger.warning.call_args.kwargs["exhausted"] is True
        capture.assert_called_once()

    def test_runtime_shares_quota_tracker(self, polling_runtime):
        assert polling_runtime.fetcher.quota is polling_runtime.quota_tracker
        assert polling_runtime.new_orchestrator().fetcher is polling_runtime.fetcher


@pytest.mark.unit
class TestSchedulerJobs:
    """Test the APScheduler job functions."""

    def test_poll_job_reports_failures(self):
        runtime = MagicMock()
        runtime.run_cycle.side_effect = RuntimeError("db down")
        session = MagicMock()

        with patch.object(scheduler_service, "SessionLocal", return_value=session), \
                patch.object(scheduler_service, "capture_exception") as capture:
            scheduler_service.youtube_poll_job(runtime)

        capture.assert_called_once()
        session.close.assert_called_once()

    def test_quota_reset_job(self, polling_runtime):
        polling_runtime.quota_tracker.record(50)

        scheduler_service.quota_reset_job(polling_runtime)

        assert polling_runtime.quota_tracker.consumed == 0

    def test_status_without_scheduler(self):
        assert scheduler_service.get_job_status() == {"exists": False, "running": False}

    def test_start_and_shutdown(self, polling_runtime):
        scheduler_service.start_scheduler(polling_runtime, interval_seconds=3600)
        try:
            status = scheduler_service.get_job_status()
            assert status["exists"] is True
            assert status["running"] is True
            assert scheduler_service.get_scheduler().get_job(scheduler_service.QUOTA_RESET_JOB_ID) is not None
        finally:
            scheduler_service.shutdown_scheduler()

        assert scheduler_service.get_scheduler() is None


class FlakyRedis:
    """Redis client whose first `fail_pings` pings raise."""

    def __init__(self, fail_pings: int):
        self.fail_pings = fail_pings
        self.pings = 0

    def ping(self):
        self.pings += 1
        if self.pings <= self.fail_pings:
            raise redis.ConnectionError("connection refused")
        return True


@pytest.fixture
def flaky_redis(monkeypatch):
    monkeypatch.setattr(settings, "REDIS_URL", "redis://localhost:6379/0")
    redis_service.reset_redis_client()
    fake = FlakyRedis(fail_pings=1)
    monkeypatch.setattr(redis_service.redis, "from_url", lambda *args, **kwargs: fake)
    yield fake
    redis_service.reset_redis_client()


@pytest.mark.unit
class TestRedisReconnect:
    """Test the shared client recovers after Redis comes back."""

    def test_reconnects_after_failed_first_attempt(self, flaky_redis, monkeypatch):
        monkeypatch.setattr(redis_service, "RECONNECT_INTERVAL_SECONDS", 0)

        assert redis_service.get_redis_client() is None
        assert redis_service.get_redis_client() is flaky_redis
        assert flaky_redis.pings == 2

    def test_waits_out_cool_down(self, flaky_redis, monkeypatch):
        monkeypatch.setattr(redis_service, "RECONNECT_INTERVAL_SECONDS", 3600)

        assert redis_service.get_redis_client() is None
        assert redis_service.get_redis_client() is None
        assert flaky_redis.pings == 1

    def test_lost_connection_is_dropped(self, flaky_redis, monkeypatch):
        monkeypatch.setattr(redis_service, "RECONNECT_INTERVAL_SECONDS", 0)
        flaky_redis.fail_pings = 0
        assert redis_service.is_redis_available() is True

        flaky_redis.fail_pings = 99
        assert redis_service.is_redis_available() is False

        flaky_redis.fail_pings = 0
        assert redis_service.get_redis_client() is flaky_redis


@pytest.mark.integration
class TestPollingCancellation:
    """Test shutdown stops an in-flight cycle from starting new batches."""

    def test_cancel_skips_later_batches(self, test_db, make_broadcast, fake_api, video_item):
        ids = [f"video{i:06d}" for i in range(60)]
        for video_id in ids:
            make_broadcast(video_id, is_live=True)
            fake_api.videos[video_id] = video_item(video_id)

        fetcher = BatchFetcher(fake_api, QuotaTracker(), max_workers=1)
        runtime = PollingRuntime(fetcher, fetcher.quota)
        served = fake_api.list_videos

        def serve_then_shut_down(video_ids, etag=None):
            response = served(video_ids, etag=etag)
            runtime.cancel()
            return response

        fake_api.list_videos = serve_then_shut_down

        result = runtime.run_cycle(test_db)

        assert len(fake_api.calls) == 1
        assert result.polled == 60
        assert result.metrics_written == 50
        assert result.failed == 10

    def test_cancelled_runtime_fetches_nothing(self, test_db, make_broadcast, polling_runtime, fake_api):
        make_broadcast("dQw4w9WgXcQ", is_live=True)

        polling_runtime.cancel()
        result = polling_runtime.run_cycle(test_db)

        assert polling_runtime.shutdown_event.is_set()
        assert fake_api.calls == []
        assert result.failed == 1
