"""Process-wide YouTube quota accounting and conditional-fetch validators."""

import logging
import threading
from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional, Any
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# YouTube quota resets at midnight Pacific time
BILLING_TIMEZONE = ZoneInfo("America/Los_Angeles")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaTracker:
    """
    Thread-safe counter of consumed YouTube quota units.

    Also holds the validator (ETag) cache used for conditional fetches, since
    both reset together when the provider billing day rolls over. State lives
    only in memory; losing it on restart costs efficiency, never correctness.
    """

    def __init__(
        self,
        daily_limit: int = 10000,
        warning_ratio: float = 0.8,
        max_validators: int = 1024,
        clock: Callable[[], datetime] = _utc_now
    ):
        """
        Initialize quota tracker.

        Args:
            daily_limit: Units available per billing day
            warning_ratio: Usage fraction that triggers a warning log
            max_validators: Maximum number of cached validator tokens
            clock: Returns the current timezone-aware time
        """
        self.daily_limit = daily_limit
        self.warning_ratio = warning_ratio
        self.max_validators = max_validators
        self._clock = clock
        self._lock = threading.Lock()
        self._used = 0
        self._exhausted = False
        self._warned = False
        self._validators: "OrderedDict[str, str]" = OrderedDict()
        self._billing_day = self._current_billing_day()

    def _current_billing_day(self) -> date:
        return self._clock().astimezone(BILLING_TIMEZONE).date()

    def _roll_over_locked(self):
        today = self._current_billing_day()
        if today != self._billing_day:
            logger.info(f"YouTube quota billing day changed to {today}; resetting counters")
            self._reset_locked()
            self._billing_day = today

    def _reset_locked(self):
        self._used = 0
        self._exhausted = False
        self._warned = False
        self._validators.clear()

    def record(self, units: int) -> int:
        """
        Charge units against today's budget.

        Args:
            units: Declared cost of the completed request

        Returns:
            Units consumed today after this charge
        """
        with self._lock:
            self._roll_over_locked()
            self._used += units

            if self._used >= self.daily_limit:
                self._exhausted = True

            if not self._warned and self._used > self.daily_limit * self.warning_ratio:
                self._warned = True
                percent = round(self._used / self.daily_limit * 100)
                logger.warning(f"YouTube API quota at {percent}% usage")

            return self._used

    def mark_exhausted(self):
        """Treat the budget as spent until the next billing day."""
        with self._lock:
            self._roll_over_locked()
            self._exhausted = True
            self._used = max(self._used, self.daily_limit)
        logger.error("YouTube API quota exceeded. Skipping polls until reset.")

    def is_exhausted(self) -> bool:
        """Whether callers should stop issuing requests."""
        with self._lock:
            self._roll_over_locked()
            return self._exhausted or self._used >= self.daily_limit

    @property
    def consumed(self) -> int:
        with self._lock:
            self._roll_over_locked()
            return self._used

    @property
    def remaining(self) -> int:
        with self._lock:
            self._roll_over_locked()
            return max(0, self.daily_limit - self._used)

    def usage(self) -> Dict[str, Any]:
        """
        Get quota usage statistics.

        Returns:
            Dictionary with used, limit, remaining, percent_used and exhausted
        """
        with self._lock:
            self._roll_over_locked()
            return {
                "used": self._used,
                "limit": self.daily_limit,
                "remaining": max(0, self.daily_limit - self._used),
                "percent_used": round(self._used / self.daily_limit * 100) if self.daily_limit else 100,
                "exhausted": self._exhausted or self._used >= self.daily_limit,
                "billing_day": self._billing_day.isoformat(),
            }

    def reset(self):
        """Reset the daily counter and validator cache."""
        with self._lock:
            self._reset_locked()
            self._billing_day = self._current_billing_day()
        logger.info("YouTube API quota reset")

    def get_validator(self, key: str) -> Optional[str]:
        """Return the cached validator token for a batch key."""
        with self._lock:
            self._roll_over_locked()
            token = self._validators.get(key)
            if token is not None:
                self._validators.move_to_end(key)
            return token

    def set_validator(self, key: str, token: Optional[str]):
        """Remember the validator returned with the last response for a batch key."""
        if not token:
            return
        with self._lock:
            self._validators[key] = token
            self._validators.move_to_end(key)
            while len(self._validators) > self.max_validators:
                self._validators.popitem(last=False)
