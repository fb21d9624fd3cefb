"""
Walk backward through calendar days, filling missing frames from the archive.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol
from zoneinfo import ZoneInfo

from lawn_lapse.frames import FrameStore, frame_key
from lawn_lapse.models import Location
from lawn_lapse.scheduling import generate_daily_slots

from .errors import BackfillAborted, FailureKind, classify_failure
from .models import BackfillLimits, BackfillState, BackfillSummary

LOGGER = logging.getLogger(__name__)


class FrameSource(Protocol):
    def export_frame(self, camera_id: str, instant: datetime) -> bytes:
        ...


class BackfillWalker:
    """Fill gaps in one camera's frame store, newest day first."""

    def __init__(
        self,
        schedule: Any,
        location: Optional[Location],
        frame_store: FrameStore,
        archive_client: FrameSource,
        camera_id: str,
        limits: Optional[BackfillLimits] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.schedule = schedule
        self.location = location
        self.frame_store = frame_store
        self.archive_client = archive_client
        self.camera_id = camera_id
        self.limits = limits or BackfillLimits()
        self.clock = clock
        self.logger = logger or LOGGER
        self.state = BackfillState()
        self.summary = BackfillSummary()

    def _now(self, tz: ZoneInfo) -> datetime:
        current = self.clock() if self.clock is not None else datetime.now(tz)
        if current.tzinfo is None:
            return current.replace(tzinfo=tz)
        return current.astimezone(tz)

    def run(self) -> BackfillSummary:
        self.limits.validate()

        tz = ZoneInfo(getattr(self.schedule, "timezone", None) or "UTC")
        now = self._now(tz)
        today = now.date()
        day_limit = self.limits.day_limit()

        if self.limits.max_days:
            self.logger.info(
                "Checking for missing frames of %s (up to %s days back)",
                self.camera_id,
                self.limits.max_days,
            )
        else:
            self.logger.info(
                "Checking historical frames of %s until no recordings remain (max %s days)",
                self.camera_id,
                self.limits.hard_ceiling_days,
            )

        while True:
            offset = self.state.day_offset
            if offset >= day_limit:
                self.summary.stop_reason = (
                    "hard-ceiling" if offset >= self.limits.hard_ceiling_days else "max-days"
                )
                break

            self.state.day_offset += 1
            target_day = today - timedelta(days=offset)
            if target_day > today:
                continue

            slots = [
                slot
                for slot in generate_daily_slots(target_day, self.schedule, self.location)
                if slot <= now
            ]
            if not slots:
                continue

            self.summary.days_scanned += 1
            day_had_data = False
            for slot in slots:
                if self._process_slot(slot):
                    day_had_data = True

            if not day_had_data:
                reason = self._stop_reason()
                if reason:
                    self.summary.stop_reason = reason
                    break

        self._log_summary()
        return self.summary

    def _process_slot(self, slot: datetime) -> bool:
        """Return ``True`` when a frame exists for ``slot`` after processing."""
        day, time_of_day = frame_key(slot)
        if self.frame_store.exists(day, time_of_day):
            self.summary.skipped += 1
            self.summary.covered_time_slots.add(time_of_day)
            return True

        self.summary.attempts += 1
        label = f"[{self.summary.attempts}] {day.isoformat()} {time_of_day[:2]}:{time_of_day[2:]}"
        try:
            data = self.archive_client.export_frame(self.camera_id, slot)
            self.frame_store.write(day, time_of_day, data)
        except Exception as exc:
            self.summary.failed += 1
            self._record_failure(exc, label)
            return False

        self.logger.info("%s: captured", label)
        self.summary.captured += 1
        self.summary.covered_time_slots.add(time_of_day)
        self.state.record_success()
        return True

    def _record_failure(self, exc: Exception, label: str) -> None:
        kind = classify_failure(exc)
        self.logger.warning("%s: failed (%s)", label, exc)

        if kind is FailureKind.FATAL:
            self.summary.stop_reason = "fatal"
            self.summary.aborted = True
            self._log_summary()
            raise BackfillAborted(
                f"Unable to continue snapshot backfill: {exc}. Aborting.",
                summary=self.summary,
            ) from exc

        state = self.state
        state.consecutive_failures += 1
        if kind is FailureKind.NOT_FOUND:
            state.consecutive_no_data += 1
            state.consecutive_not_found += 1
        elif kind is FailureKind.NO_DATA:
            state.consecutive_no_data += 1
            state.consecutive_not_found = 0
        else:
            state.consecutive_no_data = 0
            state.consecutive_not_found = 0

    def _stop_reason(self) -> Optional[str]:
        state = self.state
        limits = self.limits
        if state.consecutive_not_found >= limits.not_found_threshold:
            self.logger.info(
                "Encountered %s consecutive not-found responses. Stopping backfill.",
                state.consecutive_not_found,
            )
            return "not-found"

        no_data_limit = limits.stop_after_consecutive_no_data
        if no_data_limit is not None and state.consecutive_no_data >= no_data_limit:
            self.logger.info(
                "Stopping backfill after %s consecutive days without recordings.",
                state.consecutive_no_data,
            )
            return "no-data"

        # a streak made only of no-data failures is governed by the limit above
        only_no_data = (
            no_data_limit is not None
            and state.consecutive_no_data >= state.consecutive_failures
        )
        if state.consecutive_failures >= limits.failure_threshold and not only_no_data:
            self.logger.info(
                "Stopping backfill after %s consecutive data fetch failures.",
                state.consecutive_failures,
            )
            return "failures"
        return None

    def _log_summary(self) -> None:
        if self.summary.captured == 0 and self.summary.skipped > 0 and self.summary.failed == 0:
            self.logger.info("All frames for %s up to date", self.camera_id)
        self.logger.info(
            "Backfill summary for %s: captured=%s already_had=%s failed=%s days=%s stop=%s",
            self.camera_id,
            self.summary.captured,
            self.summary.skipped,
            self.summary.failed,
            self.summary.days_scanned,
            self.summary.stop_reason or "none",
        )


def backfill(
    schedule: Any,
    location: Optional[Location],
    frame_store: FrameStore,
    archive_client: FrameSource,
    camera_id: str,
    limits: Optional[BackfillLimits] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
    logger: Optional[logging.Logger] = None,
) -> BackfillSummary:
    """Run a :class:`BackfillWalker` and return its summary."""
    walker = BackfillWalker(
        schedule,
        location,
        frame_store,
        archive_client,
        camera_id,
        limits,
        clock=clock,
        logger=logger,
    )
    return walker.run()
