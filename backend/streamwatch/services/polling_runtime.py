"""Process-wide polling runtime: quota tracker, YouTube client and fetcher."""

import logging
import threading
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from streamwatch.config import ConfigurationError, Settings
from streamwatch.platforms.youtube.fetcher import BatchFetcher
from streamwatch.platforms.youtube.quota import QuotaTracker
from streamwatch.platforms.youtube.youtube_api import YouTubeAPI
from streamwatch.polling.metrics_writer import MetricsWriter
from streamwatch.polling.orchestrator import PollCycleResult, PollOrchestrator
from streamwatch.services.error_tracking import capture_message
from streamwatch.services.logging_service import app_logger, app_metrics
from streamwatch.services.redis_service import chart_cache

logger = logging.getLogger(__name__)


class PollingRuntime:
    """
    Long-lived collaborators shared by every poll cycle in this process.

    The quota tracker must outlive individual cycles so that consumed units
    and validator tokens carry over between triggers.
    """

    def __init__(
        self,
        fetcher: BatchFetcher,
        quota_tracker: QuotaTracker,
        max_streams: int = 200,
        min_interval_seconds: int = 55,
        cycle_budget_seconds: float = 50.0
    ):
        self.fetcher = fetcher
        self.quota_tracker = quota_tracker
        self.max_streams = max_streams
        self.min_interval_seconds = min_interval_seconds
        self.cycle_budget_seconds = cycle_budget_seconds
        self.metrics_writer = MetricsWriter()
        # Serializes cycles inside this process; other processes may still overlap
        self.cycle_lock = threading.Lock()
        # Set on shutdown; an in-flight cycle starts no further fetch batches
        self.shutdown_event = threading.Event()

    def cancel(self):
        """Stop in-flight and future cycles from starting new fetch batches."""
        if not self.shutdown_event.is_set():
            logger.info("Cancelling poll cycles")
        self.shutdown_event.set()

    def new_orchestrator(self) -> PollOrchestrator:
        """Create an orchestrator wired to the shared fetcher."""
        return PollOrchestrator(
            self.fetcher,
            metrics_writer=self.metrics_writer,
            min_interval_seconds=self.min_interval_seconds,
            cycle_budget_seconds=self.cycle_budget_seconds,
            on_recorded=lambda broadcast: chart_cache.invalidate_stream(str(broadcast.id))
        )

    def run_cycle(self, db: Session, cancel_event: Optional[threading.Event] = None) -> PollCycleResult:
        """
        Run one poll cycle unless another one is in flight in this process.

        Args:
            db: Database session
            cancel_event: Set to stop starting new fetch batches
                (defaults to the runtime's shutdown event)

        Returns:
            PollCycleResult (all zeros when skipped)
        """
        if not self.cycle_lock.acquire(blocking=False):
            logger.warning("Poll cycle already running in this process; skipping")
            return PollCycleResult()

        try:
            result = self.new_orchestrator().run_poll_cycle(
                db,
                max_broadcasts=self.max_streams,
                cancel_event=cancel_event or self.shutdown_event
            )
        except Exception:
            app_metrics.record_poll_cycle(None)
            raise
        finally:
            self.cycle_lock.release()

        app_metrics.record_poll_cycle(result)
        app_logger.info("poll_cycle", **result.to_dict())
        if result.quota_exhausted:
            app_logger.warning("quota_exhausted", **self.quota_tracker.usage())
            capture_message("YouTube API quota exhausted", level="warning", tags={"job": "poll-youtube"})
        return result


def build_polling_runtime(config: Settings, api: Optional[YouTubeAPI] = None) -> PollingRuntime:
    """
    Construct the polling runtime from settings.

    Args:
        config: Application settings
        api: Pre-built YouTube client (tests inject a fake)

    Returns:
        PollingRuntime

    Raises:
        ConfigurationError: If YOUTUBE_API_KEY is missing
    """
    if api is None:
        if not config.YOUTUBE_API_KEY:
            raise ConfigurationError("YOUTUBE_API_KEY is not set")
        api = YouTubeAPI(config.YOUTUBE_API_KEY)

    quota_tracker = QuotaTracker(
        daily_limit=config.YOUTUBE_DAILY_QUOTA,
        warning_ratio=config.YOUTUBE_QUOTA_WARNING_RATIO
    )
    fetcher = BatchFetcher(
        api,
        quota_tracker,
        max_workers=config.FETCH_MAX_WORKERS,
        max_attempts=config.FETCH_MAX_ATTEMPTS,
        retry_base_delay=config.FETCH_RETRY_BASE_DELAY
    )

    logger.info(
        f"Polling runtime ready (quota {config.YOUTUBE_DAILY_QUOTA}/day, "
        f"{config.FETCH_MAX_WORKERS} fetch worker(s))"
    )
    return PollingRuntime(
        fetcher,
        quota_tracker,
        max_streams=config.POLL_MAX_STREAMS,
        min_interval_seconds=config.POLL_MIN_INTERVAL_SECONDS,
        cycle_budget_seconds=config.POLL_CYCLE_BUDGET_SECONDS
    )


def get_polling_runtime(request: Request) -> Optional[PollingRuntime]:
    """Dependency returning the runtime built at startup (None if YouTube is not configured)."""
    return getattr(request.app.state, "polling_runtime", None)
