"""YouTube stream polling: selects due broadcasts, fetches, records, updates."""

import logging
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from streamwatch.models.stream_models import ChangeEvent, TrackedBroadcast
from streamwatch.platforms.youtube.fetcher import BatchFetcher
from streamwatch.platforms.youtube.records import ProviderRecord
from streamwatch.polling.change_detector import detect_changes, present, resolve_is_live
from streamwatch.polling.metrics_writer import MetricsWriter

logger = logging.getLogger(__name__)


@dataclass
class PollCycleResult:
    """Summary counts for one poll cycle."""

    polled: int = 0
    metrics_written: int = 0
    changes_detected: int = 0
    unchanged: int = 0
    failed: int = 0
    quota_exhausted: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


def compute_peak(previous_peak: Optional[int], current: Optional[int]) -> Optional[int]:
    """Running maximum where `None` is "no observation", never a reset."""
    if current is None:
        return previous_peak
    if previous_peak is None:
        return current
    return max(previous_peak, current)


def select_due_broadcasts(
    db: Session,
    now: datetime,
    min_interval_seconds: int = 55,
    limit: int = 200
) -> List[TrackedBroadcast]:
    """
    Broadcasts that should be refreshed this cycle.

    Due means live, never fetched, or last fetched before the minimum
    re-poll interval. Soft-deleted rows are excluded.

    Args:
        db: Database session
        now: Current time (naive UTC)
        min_interval_seconds: Minimum age of `last_fetched_at` for non-live rows
        limit: Maximum number of rows

    Returns:
        List of TrackedBroadcast rows
    """
    cutoff = now - timedelta(seconds=min_interval_seconds)
    return db.query(TrackedBroadcast).filter(
        TrackedBroadcast.deleted_at.is_(None),
        or_(
            TrackedBroadcast.is_live.is_(True),
            TrackedBroadcast.last_fetched_at.is_(None),
            TrackedBroadcast.last_fetched_at < cutoff
        )
    ).limit(limit).all()


def apply_record(broadcast: TrackedBroadcast, record: ProviderRecord, at: datetime):
    """Fold fresh provider data into the catalog row's current-state fields."""
    was_live = bool(broadcast.is_live)
    is_live = resolve_is_live(was_live, record)

    broadcast.title = present(record.title) or broadcast.title
    broadcast.description = present(record.description) or broadcast.description
    broadcast.thumbnail_url = present(record.thumbnail_url) or broadcast.thumbnail_url
    broadcast.channel_id = present(record.channel_id) or broadcast.channel_id
    broadcast.channel_title = present(record.channel_title) or broadcast.channel_title

    broadcast.is_live = is_live
    broadcast.current_viewer_count = record.concurrent_viewers
    broadcast.peak_viewer_count = compute_peak(broadcast.peak_viewer_count, record.concurrent_viewers)
    if record.like_count is not None:
        broadcast.like_count = record.like_count

    if record.scheduled_start_time is not None:
        broadcast.scheduled_start_time = record.scheduled_start_time
    if record.actual_start_time is not None:
        broadcast.actual_start_time = record.actual_start_time

    if record.actual_end_time is not None:
        broadcast.actual_end_time = record.actual_end_time
    elif was_live and not is_live and broadcast.actual_end_time is None:
        broadcast.actual_end_time = at

    broadcast.last_fetched_at = at
    broadcast.updated_at = at


class PollOrchestrator:
    """Runs one poll cycle per external trigger."""

    def __init__(
        self,
        fetcher: BatchFetcher,
        metrics_writer: Optional[MetricsWriter] = None,
        min_interval_seconds: int = 55,
        cycle_budget_seconds: float = 50.0,
        clock: Callable[[], datetime] = datetime.utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        on_recorded: Optional[Callable[[TrackedBroadcast], None]] = None
    ):
        """
        Initialize poll orchestrator.

        Args:
            fetcher: Batch fetcher (shares the process quota tracker)
            metrics_writer: Snapshot writer
            min_interval_seconds: Minimum re-poll interval for non-live rows
            cycle_budget_seconds: Wall-clock budget for starting new batches
            clock: Returns the current naive UTC time
            monotonic: Clock used for the cycle deadline
            on_recorded: Called after a broadcast's new snapshot is committed
        """
        self.fetcher = fetcher
        self.metrics_writer = metrics_writer or MetricsWriter()
        self.min_interval_seconds = min_interval_seconds
        self.cycle_budget_seconds = cycle_budget_seconds
        self._clock = clock
        self._monotonic = monotonic
        self._on_recorded = on_recorded

    def run_poll_cycle(
        self,
        db: Session,
        max_broadcasts: int = 200,
        cancel_event: Optional[threading.Event] = None
    ) -> PollCycleResult:
        """
        Poll YouTube for due broadcasts and record what changed.

        Provider failures for individual broadcasts are absorbed and counted.
        Storage errors propagate.

        Args:
            db: Database session
            max_broadcasts: Maximum broadcasts polled this cycle
            cancel_event: Set to stop starting new fetch batches

        Returns:
            PollCycleResult
        """
        deadline = self._monotonic() + self.cycle_budget_seconds

        due = select_due_broadcasts(
            db,
            now=self._clock(),
            min_interval_seconds=self.min_interval_seconds,
            limit=max_broadcasts
        )
        result = PollCycleResult(polled=len(due))

        if not due:
            logger.info("No streams to poll")
            return result

        logger.info(f"Polling {len(due)} stream(s)...")

        by_video_id = {broadcast.youtube_video_id: broadcast for broadcast in due}
        fetched = self.fetcher.fetch_by_ids(
            list(by_video_id),
            deadline=deadline,
            cancel_event=cancel_event
        )
        at = self._clock()

        for record in fetched.records:
            broadcast = by_video_id.get(record.video_id)
            if broadcast is None:
                continue
            result.changes_detected += self._commit_record(db, broadcast, record, at)
            result.metrics_written += 1

        for video_id in fetched.unchanged_ids:
            broadcast = by_video_id.get(video_id)
            if broadcast is None:
                continue
            self._commit_unchanged(db, broadcast, video_id, at)
            result.unchanged += 1

        result.failed = len([video_id for video_id in fetched.failed_ids if video_id in by_video_id])
        result.quota_exhausted = fetched.quota_exhausted

        logger.info(
            f"Poll cycle done: {result.metrics_written} snapshot(s), "
            f"{result.changes_detected} change(s), {result.unchanged} unchanged, {result.failed} failed"
        )
        return result

    def _commit_record(self, db: Session, broadcast: TrackedBroadcast, record: ProviderRecord, at: datetime) -> int:
        """Stage snapshot, changes and catalog update for one broadcast, then commit."""
        try:
            changes = detect_changes(broadcast, record, detected_at=at)

            self.metrics_writer.append_snapshot(
                db,
                broadcast.id,
                viewers=record.concurrent_viewers,
                likes=record.like_count,
                views=record.view_count,
                at=at
            )

            for change in changes:
                db.add(ChangeEvent(
                    stream_id=broadcast.id,
                    change_type=change.change_type,
                    old_value=change.old_value,
                    new_value=change.new_value,
                    detected_at=change.detected_at
                ))

            apply_record(broadcast, record, at)
            db.commit()

        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Storage error while recording stream {record.video_id}")
            raise

        for change in changes:
            logger.info(f"Stream {record.video_id}: {change.change_type.value}")
        if self._on_recorded is not None:
            self._on_recorded(broadcast)
        return len(changes)

    def _commit_unchanged(self, db: Session, broadcast: TrackedBroadcast, video_id: str, at: datetime):
        """A not-modified answer still counts as a poll."""
        try:
            broadcast.last_fetched_at = at
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Storage error while touching stream {video_id}")
            raise
