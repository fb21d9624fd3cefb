"""Scheduling orchestration for lawn lapse."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from lawn_lapse.models import ConfigurationError, parse_hhmm


def capture_job_id(camera: Any) -> str:
    return f"capture_{camera.id or camera.name}"


def queue_due_captures(app: Any, scheduler: Any, now: Optional[datetime] = None) -> List[str]:
    """Queue a one-shot capture for every camera whose next slot is imminent.

    The capture runs a short settle delay after the slot so the archive has
    footage for it. Returns the ids of the queued jobs.
    """
    current = now or app.now()
    settle = timedelta(seconds=app.config.automation.capture_settle_seconds)
    queued: List[str] = []

    for camera in app.cameras:
        try:
            if not app.is_camera_due(camera, current):
                continue
            slot = app.next_capture_time(current)
        except ConfigurationError as exc:
            app.logger.error("Cannot evaluate schedule for %s: %s", camera.label, exc)
            continue
        if slot is None:
            continue

        job_id = capture_job_id(camera)
        scheduler.add_job(
            app.capture_slot,
            trigger=DateTrigger(run_date=slot + settle),
            args=[camera, slot],
            id=job_id,
            name=f"Capture {camera.label}",
            max_instances=1,
            replace_existing=True,
        )
        app.logger.info(
            "Queued capture for %s at %s",
            camera.label,
            slot.isoformat(),
        )
        queued.append(job_id)

    return queued


def run(app: Any) -> None:
    """Run lawn lapse with scheduled capture and assembly jobs."""
    # One worker: captures and the daily update share the archive session.
    scheduler = BlockingScheduler(
        timezone=app.timezone,
        executors={"default": ThreadPoolExecutor(max_workers=1)},
        job_defaults={"coalesce": True, "misfire_grace_time": None},
    )
    automation = app.config.automation

    scheduler.add_job(
        queue_due_captures,
        trigger=IntervalTrigger(minutes=automation.poll_interval_minutes),
        args=[app, scheduler],
        id="poll_captures",
        name="Poll Capture Schedule",
        max_instances=1,
    )

    daily_time = parse_hhmm(automation.daily_run_time)
    scheduler.add_job(
        app.run_all,
        trigger=CronTrigger(hour=daily_time.hour, minute=daily_time.minute, timezone=app.timezone),
        id="daily_update",
        name="Daily Backfill And Videos",
        max_instances=1,
    )

    app.logger.info("Lawn lapse scheduler started")
    app.logger.info("Polling every %s minutes", automation.poll_interval_minutes)
    app.logger.info("Daily update at %s (%s)", automation.daily_run_time, app.timezone.key)
    app.logger.info("Monitoring %s cameras:", len(app.cameras))
    for camera in app.cameras:
        app.logger.info("  - '%s' (%s) -> %s", camera.label, camera.id, camera.snapshot_dir)

    next_slot = app.next_capture_time()
    if next_slot is not None:
        app.logger.info("Next scheduled capture: %s", next_slot.isoformat())

    try:
        queue_due_captures(app, scheduler)
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        app.logger.info("Lawn lapse scheduler stopped")
        scheduler.shutdown()


__all__ = ["capture_job_id", "queue_due_captures", "run"]
