"""
Core dataclasses for walking back through archived camera footage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# Stop once this many days in a row returned nothing but "not found".
NOT_FOUND_STOP_THRESHOLD = 3
# Stop once this many slot requests in a row failed, whatever the reason.
RAW_FAILURE_STOP_THRESHOLD = 3
HARD_CEILING_DAYS = 365


@dataclass(frozen=True)
class BackfillLimits:
    max_days: Optional[int] = None
    hard_ceiling_days: int = HARD_CEILING_DAYS
    stop_after_consecutive_no_data: Optional[int] = 7
    not_found_threshold: int = NOT_FOUND_STOP_THRESHOLD
    failure_threshold: int = RAW_FAILURE_STOP_THRESHOLD

    def validate(self) -> None:
        if self.max_days is not None and self.max_days <= 0:
            raise ValueError("max_days must be positive when set")
        if self.hard_ceiling_days <= 0:
            raise ValueError("hard_ceiling_days must be positive")
        if self.stop_after_consecutive_no_data is not None and self.stop_after_consecutive_no_data <= 0:
            raise ValueError("stop_after_consecutive_no_data must be positive when set")

    def day_limit(self) -> int:
        if self.max_days is None:
            return self.hard_ceiling_days
        return min(self.max_days, self.hard_ceiling_days)


@dataclass
class BackfillState:
    """Mutable counters for one walk over one camera's history."""

    day_offset: int = 0
    consecutive_no_data: int = 0
    consecutive_not_found: int = 0
    consecutive_failures: int = 0

    def record_success(self) -> None:
        self.consecutive_no_data = 0
        self.consecutive_not_found = 0
        self.consecutive_failures = 0


@dataclass
class BackfillSummary:
    captured: int = 0
    skipped: int = 0
    failed: int = 0
    attempts: int = 0
    days_scanned: int = 0
    covered_time_slots: set[str] = field(default_factory=set)
    stop_reason: str = ""
    aborted: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "captured": self.captured,
            "skipped": self.skipped,
            "failed": self.failed,
            "attempts": self.attempts,
            "days_scanned": self.days_scanned,
            "covered_time_slots": sorted(self.covered_time_slots),
            "stop_reason": self.stop_reason,
            "aborted": self.aborted,
        }
