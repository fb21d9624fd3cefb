import logging
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import cv2
import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from historical_backfill.errors import FatalArchiveError  # noqa: E402
from lawn_lapse.app import LawnLapse, exit_code  # noqa: E402
from lawn_lapse.config import (  # noqa: E402
    ArchiveSettings,
    CameraConfig,
    Config,
    HistorySettings,
)
from lawn_lapse.models import FixedTimeSchedule  # noqa: E402

UTC = ZoneInfo("UTC")
NOW = datetime(2025, 6, 10, 15, 0, tzinfo=UTC)


def _jpeg_bytes() -> bytes:
    success, buffer = cv2.imencode(".jpg", np.full((48, 64, 3), 120, dtype=np.uint8))
    assert success
    return buffer.tobytes()


class CameraArchive:
    """Serves frames for healthy cameras and fails fatally for one camera id."""

    def __init__(self, broken_camera: str = ""):
        self.broken_camera = broken_camera
        self.calls = []

    def export_frame(self, camera_id, instant):
        self.calls.append((camera_id, instant))
        if camera_id == self.broken_camera:
            raise FatalArchiveError("Failed to login to UniFi Protect")
        return _jpeg_bytes()


class RecordingEncoder:
    def __init__(self):
        self.outputs = []
        self.sizes = {}

    def encode_sequence(self, frames, output_path, **kwargs):
        self.outputs.append(output_path)
        self.sizes[output_path] = (kwargs["width"], kwargs["height"])
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"video")
        return output_path

    def concatenate(self, inputs, output_path):
        self.outputs.append(output_path)
        output_path.write_bytes(b"full")
        return output_path

    def video_dimensions(self, video_path):
        return self.sizes.get(video_path)


def _camera(tmp_path: Path, camera_id: str) -> CameraConfig:
    return CameraConfig(
        id=camera_id,
        name=camera_id.title(),
        snapshot_dir=tmp_path / camera_id / "snapshots",
        timelapse_dir=tmp_path / camera_id / "videos",
    )


def _app(tmp_path: Path, archive, cameras, max_days=5) -> LawnLapse:
    config = Config(
        schedule=FixedTimeSchedule(times=("12:00",)),
        location=None,
        archive=ArchiveSettings(),
        cameras=tuple(cameras),
        history=HistorySettings(max_days=max_days),
        base_dir=tmp_path,
    )
    return LawnLapse(
        config,
        archive_client=archive,
        encoder=RecordingEncoder(),
        clock=lambda: NOW,
        logger=logging.getLogger("lawn-lapse-tests"),
    )


def test_five_day_backfill_builds_one_time_group(tmp_path):
    archive = CameraArchive()
    app = _app(tmp_path, archive, [_camera(tmp_path, "lawn")])

    (result,) = app.run_all()

    assert result.success is True
    assert result.backfill.captured == 5
    assert result.backfill.covered_time_slots == {"1200"}
    assert result.assembly.daily_videos == []
    (video,) = result.assembly.time_group_videos
    assert video.output_path.name == "timelapse_12h00_2025-06-06_to_2025-06-10.mp4"

    archive.calls.clear()
    (second,) = app.run_all()
    assert archive.calls == []
    assert (second.backfill.captured, second.backfill.skipped, second.backfill.failed) == (0, 5, 0)


def test_failing_camera_does_not_stop_others(tmp_path):
    archive = CameraArchive(broken_camera="front")
    app = _app(tmp_path, archive, [_camera(tmp_path, "front"), _camera(tmp_path, "back")])

    results = app.run_all()

    assert [result.success for result in results] == [False, True]
    assert "Failed to login" in results[0].error
    assert results[0].backfill.failed == 1
    assert results[1].backfill.captured == 5
    assert exit_code(results) == 1
    assert exit_code(results[1:]) == 0


def test_videos_only_skips_archive(tmp_path):
    archive = CameraArchive(broken_camera="lawn")
    camera = _camera(tmp_path, "lawn")
    app = _app(tmp_path, archive, [camera])
    store = app.frame_store(camera)
    for offset in range(3):
        store.write(NOW.date() - timedelta(days=offset), "1200", _jpeg_bytes())

    (result,) = app.run_all(videos_only=True)

    assert result.success is True
    assert archive.calls == []
    assert len(result.assembly.time_group_videos) == 1


def test_capture_slot_writes_frame_once(tmp_path):
    archive = CameraArchive()
    camera = _camera(tmp_path, "lawn")
    app = _app(tmp_path, archive, [camera])
    slot = datetime(2025, 6, 10, 12, 0, tzinfo=UTC)

    first = app.capture_slot(camera, slot)
    second = app.capture_slot(camera, slot)

    assert first.name == "2025-06-10_1200.jpg"
    assert second is None
    assert len(archive.calls) == 1
    assert app.last_capture_time(camera) == slot


def test_camera_due_uses_latest_frame(tmp_path):
    camera = _camera(tmp_path, "lawn")
    app = _app(tmp_path, CameraArchive(), [camera])
    store = app.frame_store(camera)
    store.write(date(2025, 6, 9), "1200", b"x")

    assert app.is_camera_due(camera, datetime(2025, 6, 10, 11, 56, tzinfo=UTC)) is True
    assert app.is_camera_due(camera, datetime(2025, 6, 10, 11, 40, tzinfo=UTC)) is False


def test_status_reports_cover_every_camera(tmp_path):
    cameras = [_camera(tmp_path, "front"), _camera(tmp_path, "back")]
    app = _app(tmp_path, CameraArchive(), cameras)
    app.frame_store(cameras[0]).write(date(2025, 6, 9), "1200", b"x")

    reports = app.status_reports()

    assert reports[0].startswith("Lawn Lapse Status: Front")
    assert "Frames: 1" in reports[0]
    assert "Frames: none found" in reports[1]
