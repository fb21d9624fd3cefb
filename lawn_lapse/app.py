"""
Lawn Lapse: scheduled camera snapshots assembled into timelapse videos.
Fills history from the UniFi Protect archive and renders daily,
per-time-of-day and full-length videos for every configured camera.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from historical_backfill.archive_client import ProtectArchiveClient
from historical_backfill.models import BackfillLimits, BackfillSummary
from historical_backfill.walker import FrameSource, backfill
from lawn_lapse import scheduler as scheduler_module
from lawn_lapse.config import CameraConfig, Config, load_config
from lawn_lapse.distribution import analyze_distribution
from lawn_lapse.encoder import FfmpegEncoder
from lawn_lapse.frames import FrameStore, frame_key
from lawn_lapse.logging_setup import configure_logging, default_log_file
from lawn_lapse.rendering import AssemblyResult, VideoAssembler
from lawn_lapse.scheduling import get_next_capture_time, is_capture_due
from lawn_lapse.status import build_status_report, format_status_report

# Load environment variables
load_dotenv()


@dataclass
class CameraResult:
    camera: CameraConfig
    success: bool
    error: Optional[str] = None
    backfill: Optional[BackfillSummary] = None
    assembly: Optional[AssemblyResult] = None


def exit_code(results: Sequence[CameraResult]) -> int:
    """Non-zero when any camera failed."""
    return 0 if all(result.success for result in results) else 1


class LawnLapse:
    def __init__(
        self,
        config: Optional[Config] = None,
        config_path: Optional[Path] = None,
        *,
        archive_client: Optional[FrameSource] = None,
        encoder: Optional[FfmpegEncoder] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
        verbose: bool = False,
    ) -> None:
        self.config = config or load_config(config_path)
        self.logger = logger or configure_logging(
            level=logging.DEBUG if verbose else logging.INFO,
            log_file=default_log_file(self.config.base_dir),
        )
        self._archive_client = archive_client
        self.encoder = encoder or FfmpegEncoder(logger=self.logger)
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def cameras(self) -> Sequence[CameraConfig]:
        return self.config.cameras

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(getattr(self.config.schedule, "timezone", None) or "UTC")

    def now(self) -> datetime:
        if self.clock is not None:
            current = self.clock()
            if current.tzinfo is None:
                return current.replace(tzinfo=self.timezone)
            return current.astimezone(self.timezone)
        return datetime.now(self.timezone)

    @property
    def archive_client(self) -> FrameSource:
        if self._archive_client is None:
            self._archive_client = ProtectArchiveClient(self.config.archive, logger=self.logger)
        return self._archive_client

    def frame_store(self, camera: CameraConfig) -> FrameStore:
        return FrameStore(camera.snapshot_dir)

    def backfill_limits(self) -> BackfillLimits:
        history = self.config.history
        return BackfillLimits(
            max_days=history.max_days,
            stop_after_consecutive_no_data=history.stop_after_consecutive_no_data,
        )

    def last_capture_time(self, camera: CameraConfig) -> Optional[datetime]:
        """Wall-clock time of the newest stored frame, in the schedule timezone."""
        latest = self.frame_store(camera).latest()
        if latest is None:
            return None
        clock = time(int(latest.time_of_day[:2]), int(latest.time_of_day[2:]))
        return datetime.combine(latest.date, clock, tzinfo=self.timezone)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def is_camera_due(self, camera: CameraConfig, now: Optional[datetime] = None) -> bool:
        return is_capture_due(
            self.config.schedule,
            self.last_capture_time(camera),
            self.config.location,
            now or self.now(),
        )

    def next_capture_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        return get_next_capture_time(self.config.schedule, self.config.location, now or self.now())

    def capture_slot(self, camera: CameraConfig, slot: datetime) -> Optional[Path]:
        """Fetch the frame for ``slot`` unless it is already stored."""
        store = self.frame_store(camera)
        day, time_of_day = frame_key(slot.astimezone(self.timezone))
        if store.exists(day, time_of_day):
            self.logger.info("Frame %s %s for %s already stored", day, time_of_day, camera.label)
            return None
        data = self.archive_client.export_frame(camera.id, slot)
        path = store.write(day, time_of_day, data)
        self.logger.info("Captured %s for %s", path.name, camera.label)
        return path

    # ------------------------------------------------------------------
    # Per-camera processing
    # ------------------------------------------------------------------

    def backfill_camera(self, camera: CameraConfig) -> BackfillSummary:
        return backfill(
            self.config.schedule,
            self.config.location,
            self.frame_store(camera),
            self.archive_client,
            camera.id,
            self.backfill_limits(),
            clock=self.now,
            logger=self.logger,
        )

    def build_videos(self, camera: CameraConfig) -> AssemblyResult:
        distribution = analyze_distribution(self.frame_store(camera))
        self.logger.info(
            "Frame distribution for %s: %s daily videos, %s time groups",
            camera.label,
            len(distribution.daily_videos),
            len(distribution.time_groups),
        )
        assembler = VideoAssembler(
            camera.timelapse_dir,
            camera.video,
            encoder=self.encoder,
            logger=self.logger,
        )
        return assembler.assemble(distribution)

    def process_camera(self, camera: CameraConfig, *, videos_only: bool = False) -> CameraResult:
        """Backfill then assemble videos for one camera, capturing any failure."""
        self.logger.info("Processing camera %s (%s)", camera.label, camera.id)
        summary: Optional[BackfillSummary] = None
        try:
            if not videos_only:
                summary = self.backfill_camera(camera)
            assembly = self.build_videos(camera)
        except Exception as exc:
            self.logger.exception("Camera %s failed: %s", camera.label, exc)
            partial = getattr(exc, "summary", None)
            return CameraResult(
                camera=camera,
                success=False,
                error=str(exc),
                backfill=summary or partial,
            )
        return CameraResult(camera=camera, success=True, backfill=summary, assembly=assembly)

    def run_all(self, *, videos_only: bool = False) -> List[CameraResult]:
        """Process every camera in turn; one failure never stops the rest."""
        if not self.cameras:
            self.logger.warning("No cameras configured")
            return []

        results = [
            self.process_camera(camera, videos_only=videos_only)
            for camera in self.cameras
        ]

        failed = [result for result in results if not result.success]
        if failed:
            self.logger.error(
                "%s of %s cameras failed: %s",
                len(failed),
                len(results),
                ", ".join(result.camera.label for result in failed),
            )
        else:
            self.logger.info("All %s cameras processed", len(results))
        return results

    def status_reports(self) -> List[str]:
        return [
            format_status_report(
                camera.label,
                build_status_report(self.frame_store(camera), camera.timelapse_dir),
            )
            for camera in self.cameras
        ]

    def run(self) -> None:
        """Start the long-running scheduler."""
        scheduler_module.run(self)


__all__ = ["CameraResult", "LawnLapse", "exit_code"]
