import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch
from zoneinfo import ZoneInfo

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import lawn_lapse.scheduler as scheduler_module  # noqa: E402
from lawn_lapse.config import (  # noqa: E402
    ArchiveSettings,
    AutomationSettings,
    CameraConfig,
    Config,
)
from lawn_lapse.models import FixedTimeSchedule, SunriseSunsetSchedule  # noqa: E402
from lawn_lapse.scheduling import get_next_capture_time, is_capture_due  # noqa: E402

UTC = ZoneInfo("UTC")


class FakeScheduler:
    def __init__(self, *args, **kwargs):
        self.jobs = []
        self.shutdown_called = False

    def add_job(self, func, trigger, **kwargs):
        self.jobs.append({"func": func, "trigger": trigger, **kwargs})

    def start(self):
        raise KeyboardInterrupt

    def shutdown(self):
        self.shutdown_called = True


class DummyApp:
    def __init__(self, tmp_path: Path, now: datetime, schedule=None, last_capture=None):
        self.config = Config(
            schedule=schedule or FixedTimeSchedule(times=("12:00",)),
            location=None,
            archive=ArchiveSettings(),
            cameras=(
                CameraConfig(
                    id="cam-1",
                    name="Lawn",
                    snapshot_dir=tmp_path / "snapshots",
                    timelapse_dir=tmp_path / "videos",
                ),
            ),
            automation=AutomationSettings(poll_interval_minutes=10, daily_run_time="14:30"),
        )
        self._now = now
        self._last_capture = last_capture
        self.logger = logging.getLogger("scheduler-tests")
        self.timezone = UTC

    @property
    def cameras(self):
        return self.config.cameras

    def now(self):
        return self._now

    def is_camera_due(self, camera, now=None):
        return is_capture_due(self.config.schedule, self._last_capture, None, now or self._now)

    def next_capture_time(self, now=None):
        return get_next_capture_time(self.config.schedule, None, now or self._now)

    def capture_slot(self, camera, slot):
        pass

    def run_all(self):
        pass


def _run_scheduler_for_test(app: DummyApp) -> FakeScheduler:
    fake_scheduler = FakeScheduler()
    with patch.object(scheduler_module, "BlockingScheduler", return_value=fake_scheduler):
        scheduler_module.run(app)
    return fake_scheduler


def test_scheduler_registers_poll_and_daily_jobs(tmp_path):
    app = DummyApp(tmp_path, datetime(2025, 1, 1, 9, 0, tzinfo=UTC))

    fake_scheduler = _run_scheduler_for_test(app)

    ids = [job["id"] for job in fake_scheduler.jobs]
    assert ids == ["poll_captures", "daily_update"]
    poll, daily = fake_scheduler.jobs
    assert poll["trigger"].interval == timedelta(minutes=10)
    assert poll["max_instances"] == 1
    assert str(daily["trigger"].fields[daily["trigger"].FIELD_NAMES.index("hour")]) == "14"
    assert str(daily["trigger"].fields[daily["trigger"].FIELD_NAMES.index("minute")]) == "30"
    assert fake_scheduler.shutdown_called is True


def test_scheduler_queues_capture_when_slot_is_imminent(tmp_path):
    app = DummyApp(tmp_path, datetime(2025, 1, 1, 11, 57, tzinfo=UTC))

    fake_scheduler = _run_scheduler_for_test(app)

    capture_jobs = [job for job in fake_scheduler.jobs if job["id"] == "capture_cam-1"]
    assert len(capture_jobs) == 1
    job = capture_jobs[0]
    slot = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
    assert job["args"] == [app.cameras[0], slot]
    assert job["trigger"].run_date == slot + timedelta(seconds=60)
    assert job["replace_existing"] is True


def test_no_capture_queued_when_slot_is_far_away(tmp_path):
    app = DummyApp(tmp_path, datetime(2025, 1, 1, 9, 0, tzinfo=UTC))
    fake_scheduler = FakeScheduler()

    queued = scheduler_module.queue_due_captures(app, fake_scheduler)

    assert queued == []
    assert fake_scheduler.jobs == []


def test_schedule_errors_do_not_break_polling(tmp_path):
    app = DummyApp(
        tmp_path,
        datetime(2025, 1, 1, 9, 0, tzinfo=UTC),
        schedule=SunriseSunsetSchedule(),
    )
    fake_scheduler = FakeScheduler()

    assert scheduler_module.queue_due_captures(app, fake_scheduler) == []


def test_scheduler_runs_jobs_one_at_a_time(tmp_path):
    app = DummyApp(tmp_path, datetime(2025, 1, 1, 11, 57, tzinfo=UTC))
    fake_scheduler = FakeScheduler()

    with patch.object(
        scheduler_module, "BlockingScheduler", return_value=fake_scheduler
    ) as scheduler_cls:
        scheduler_module.run(app)

    kwargs = scheduler_cls.call_args.kwargs
    executor = kwargs["executors"]["default"]
    assert isinstance(executor, scheduler_module.ThreadPoolExecutor)
    assert executor._pool._max_workers == 1
    assert kwargs["job_defaults"]["misfire_grace_time"] is None
    assert {job["id"] for job in fake_scheduler.jobs} == {
        "poll_captures",
        "daily_update",
        "capture_cam-1",
    }
