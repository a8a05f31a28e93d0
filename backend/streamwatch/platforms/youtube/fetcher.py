"""Batched, quota-aware fetching of YouTube video data."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from streamwatch.platforms.youtube.exceptions import (
    NotModified,
    ProviderError,
    QuotaExceededError,
    VideoNotFoundError,
)
from streamwatch.platforms.youtube.quota import QuotaTracker
from streamwatch.platforms.youtube.records import ProviderRecord
from streamwatch.platforms.youtube.youtube_api import YouTubeAPI

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50  # videos.list accepts at most 50 IDs


def chunk(items: List[str], size: int) -> List[List[str]]:
    """Split a list into consecutive slices of at most `size` items."""
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class FetchResult:
    """Outcome of one `fetch_by_ids` call.

    `records` are in arrival order; match them back by `video_id`.
    `unchanged_ids` answered "not modified". `failed_ids` were dropped for
    this cycle (errors, not found, skipped on deadline/cancel/quota).
    """

    records: List[ProviderRecord] = field(default_factory=list)
    unchanged_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    quota_exhausted: bool = False


@dataclass
class _BatchOutcome:
    records: List[ProviderRecord] = field(default_factory=list)
    unchanged_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)


class BatchFetcher:
    """Fetches provider records in batches, with ETag caching and retries."""

    def __init__(
        self,
        api: YouTubeAPI,
        quota_tracker: QuotaTracker,
        max_workers: int = 4,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic
    ):
        """
        Initialize batch fetcher.

        Args:
            api: Provider client exposing `list_videos(ids, etag=None)`
            quota_tracker: Shared quota tracker
            max_workers: Maximum batches in flight at once
            max_attempts: Attempts per batch for retryable errors
            retry_base_delay: First backoff delay in seconds, doubled per attempt
            sleep: Backoff sleep used when no cancel event is given
            monotonic: Clock used for deadline checks
        """
        self.api = api
        self.quota = quota_tracker
        self.max_workers = max(1, max_workers)
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._monotonic = monotonic

    def fetch_by_ids(
        self,
        video_ids: List[str],
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> FetchResult:
        """
        Fetch fresh data for a list of video IDs.

        Never raises for provider-side failures; IDs that could not be
        retrieved are reported in `failed_ids`.

        Args:
            video_ids: YouTube video IDs
            deadline: Monotonic time after which no new batch starts
            cancel_event: Set to stop starting new batches

        Returns:
            FetchResult
        """
        result = FetchResult()
        ids = list(dict.fromkeys(video_ids))
        if not ids:
            return result

        if self.quota.is_exhausted():
            logger.warning(f"YouTube quota exhausted; not fetching {len(ids)} video(s)")
            result.failed_ids = ids
            result.quota_exhausted = True
            return result

        batches = chunk(ids, MAX_BATCH_SIZE)
        workers = min(self.max_workers, len(batches))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="youtube-fetch") as pool:
            futures = [
                pool.submit(self._fetch_batch_with_retry, batch, deadline, cancel_event)
                for batch in batches
            ]
            for future in as_completed(futures):
                outcome = future.result()
                result.records.extend(outcome.records)
                result.unchanged_ids.extend(outcome.unchanged_ids)
                result.failed_ids.extend(outcome.failed_ids)

        result.quota_exhausted = self.quota.is_exhausted()
        logger.info(
            f"Fetched {len(result.records)} record(s), {len(result.unchanged_ids)} unchanged, "
            f"{len(result.failed_ids)} failed across {len(batches)} batch(es)"
        )
        return result

    def _stop_reason(self, deadline: Optional[float], cancel_event: Optional[threading.Event]) -> Optional[str]:
        if cancel_event is not None and cancel_event.is_set():
            return "cancelled"
        if deadline is not None and self._monotonic() >= deadline:
            return "cycle budget spent"
        if self.quota.is_exhausted():
            return "quota exhausted"
        return None

    def _backoff(self, attempt_number: int) -> float:
        return self.retry_base_delay * (2 ** (attempt_number - 1))

    def _retrying(self, deadline: Optional[float], cancel_event: Optional[threading.Event]) -> Retrying:
        """Retry policy for one batch: rate limits and 5xx only, bounded by attempts, deadline and cancel."""

        def no_time_left(retry_state: RetryCallState) -> bool:
            if deadline is None:
                return False
            return self._monotonic() + self._backoff(retry_state.attempt_number) >= deadline

        stop = stop_after_attempt(self.max_attempts) | no_time_left
        sleep = self._sleep
        if cancel_event is not None:
            stop = stop | stop_when_event_set(cancel_event)
            # Backoff ends early when the event is set
            sleep = cancel_event.wait

        return Retrying(
            stop=stop,
            wait=wait_exponential(multiplier=self.retry_base_delay),
            retry=retry_if_exception(lambda e: getattr(e, "retryable", False)),
            sleep=sleep,
            before_sleep=self._log_retry,
            reraise=True
        )

    def _log_retry(self, retry_state: RetryCallState):
        error = retry_state.outcome.exception()
        logger.warning(
            f"{error.__class__.__name__} ({getattr(error, 'status', None)}). "
            f"Retry attempt {retry_state.attempt_number}/{self.max_attempts} "
            f"after {retry_state.next_action.sleep}s"
        )

    def _fetch_batch_with_retry(
        self,
        batch: List[str],
        deadline: Optional[float],
        cancel_event: Optional[threading.Event]
    ) -> _BatchOutcome:
        """Run one batch through the error policy."""
        try:
            for attempt in self._retrying(deadline, cancel_event):
                with attempt:
                    stop = self._stop_reason(deadline, cancel_event)
                    if stop:
                        logger.info(f"Skipping batch of {len(batch)} video(s): {stop}")
                        return _BatchOutcome(failed_ids=list(batch))
                    return self._fetch_batch(batch)

        except QuotaExceededError:
            self.quota.mark_exhausted()

        except VideoNotFoundError as e:
            logger.warning(f"YouTube videos not found: {batch} ({e.reason or e.status})")

        except ProviderError as e:
            if e.retryable:
                logger.error(f"Giving up on batch starting {batch[0]}: {e}")
            else:
                logger.error(f"Unknown YouTube API error for batch starting {batch[0]}: {e}")

        except Exception:
            logger.exception(f"Unexpected error fetching batch starting {batch[0]}")

        return _BatchOutcome(failed_ids=list(batch))

    def _fetch_batch(self, batch: List[str]) -> _BatchOutcome:
        """Issue a single `videos.list` request for one batch."""
        batch_key = batch[0]  # First video ID keys the validator cache
        etag = self.quota.get_validator(batch_key)

        try:
            response = self.api.list_videos(batch, etag=etag)
        except NotModified:
            self.quota.record(YouTubeAPI.VIDEOS_LIST_COST)
            logger.debug(f"Batch starting {batch_key} not modified")
            return _BatchOutcome(unchanged_ids=list(batch))

        self.quota.record(YouTubeAPI.VIDEOS_LIST_COST)
        self.quota.set_validator(batch_key, response.get('etag'))

        records = []
        for item in response.get('items') or []:
            try:
                records.append(ProviderRecord.from_api_item(item))
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed video item: {e}")

        returned = {record.video_id for record in records}
        missing = [video_id for video_id in batch if video_id not in returned]
        if missing:
            logger.warning(f"YouTube did not return {len(missing)} video(s): {missing}")

        return _BatchOutcome(records=records, failed_ids=missing)
