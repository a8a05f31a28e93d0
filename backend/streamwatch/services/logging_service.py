"""Logging setup, JSON event log and in-process poll/cache counters."""

import copy
import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional


def configure_logging(level: str = "INFO"):
    """Configure root logging for module loggers (`logging.getLogger(__name__)`)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )
    logging.getLogger("apscheduler").setLevel(logging.INFO)
    # googleapiclient logs every discovery lookup at INFO
    logging.getLogger("googleapiclient.discovery").setLevel(logging.WARNING)


class StructuredLogger:
    """
    One-line JSON event log for aggregators.

    Used for events that are worth querying later (poll cycle summaries,
    captured exceptions). Everything else goes through module loggers.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        # Keep JSON lines out of the plain-text root handler
        self.logger.propagate = False

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

    def _event(self, level: str, message: str, fields: Dict[str, Any]) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": level,
            "logger": self.logger.name,
            "message": message,
        }
        entry.update(fields)
        return json.dumps(entry, default=str)

    def info(self, message: str, **fields):
        self.logger.info(self._event("INFO", message, fields))

    def warning(self, message: str, **fields):
        self.logger.warning(self._event("WARNING", message, fields))

    def error(self, message: str, **fields):
        self.logger.error(self._event("ERROR", message, fields))


class ApplicationMetrics:
    """
    Counters for /health/metrics.

    Poll cycle totals and response cache hits for this process only; they
    start from zero on every restart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at = datetime.utcnow()
        self.metrics: Dict[str, Any] = {
            "poll_cycles": {
                "total_runs": 0,
                "successful_runs": 0,
                "failed_runs": 0,
                "snapshots_written": 0,
                "changes_detected": 0,
                "streams_failed": 0,
                "last_run_at": None,
                "last_quota_exhausted": False
            },
            "cache": {
                "hits": 0,
                "misses": 0
            },
        }

    def record_poll_cycle(self, result: Optional[Any]):
        """
        Add one poll cycle to the totals.

        Args:
            result: PollCycleResult, or None if the cycle raised
        """
        with self._lock:
            cycles = self.metrics["poll_cycles"]
            cycles["total_runs"] += 1
            cycles["last_run_at"] = datetime.utcnow().isoformat()

            if result is None:
                cycles["failed_runs"] += 1
                return

            cycles["successful_runs"] += 1
            cycles["snapshots_written"] += result.metrics_written
            cycles["changes_detected"] += result.changes_detected
            cycles["streams_failed"] += result.failed
            cycles["last_quota_exhausted"] = result.quota_exhausted

    def increment_cache(self, hit: bool = True):
        with self._lock:
            self.metrics["cache"]["hits" if hit else "misses"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of all counters plus uptime."""
        with self._lock:
            snapshot = copy.deepcopy(self.metrics)
        snapshot["uptime_seconds"] = (datetime.utcnow() - self.started_at).total_seconds()
        return snapshot

    def get_cache_hit_rate(self) -> float:
        """Cache hit rate as a percentage (0.0 before any lookup)."""
        with self._lock:
            hits = self.metrics["cache"]["hits"]
            total = hits + self.metrics["cache"]["misses"]
        return (hits / total) * 100 if total else 0.0


# Global instances
app_logger = StructuredLogger("streamwatch-app")
app_metrics = ApplicationMetrics()
