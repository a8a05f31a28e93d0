"""Polling pipeline: change detection, snapshots and the poll cycle."""

from streamwatch.polling.change_detector import DetectedChange, detect_changes
from streamwatch.polling.metrics_writer import MetricsWriter
from streamwatch.polling.orchestrator import PollCycleResult, PollOrchestrator, select_due_broadcasts

__all__ = [
    "DetectedChange",
    "detect_changes",
    "MetricsWriter",
    "PollCycleResult",
    "PollOrchestrator",
    "select_due_broadcasts",
]
