import shutil
import subprocess
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import lawn_lapse.encoder as encoder_module  # noqa: E402
from lawn_lapse.encoder import (  # noqa: E402
    EncodingError,
    FfmpegEncoder,
    build_video_filter,
    max_dimensions,
    probe_video_dimensions,
    write_frame_list,
)


def _fake_ffmpeg(monkeypatch, *, returncode=0):
    calls = []

    def fake_run(cmd, capture_output, check):
        list_path = Path(cmd[cmd.index("-i") + 1])
        calls.append({"cmd": cmd, "list": list_path.read_text(encoding="utf-8")})
        if returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output=b"", stderr=b"encoder exploded")
        Path(cmd[-1]).write_bytes(b"mp4")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr(encoder_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(encoder_module.subprocess, "run", fake_run)
    return calls


def test_frame_list_holds_each_frame_for_one_fps_tick(tmp_path):
    frames = [tmp_path / "a.jpg", tmp_path / "it's.jpg"]

    write_frame_list(frames, tmp_path / "list.txt", fps=24)

    lines = (tmp_path / "list.txt").read_text(encoding="utf-8").splitlines()
    assert lines[0] == "ffconcat version 1.0"
    assert lines[1] == f"file '{(tmp_path / 'a.jpg').resolve()}'"
    assert lines[2] == "duration 0.041667"
    assert lines[3].endswith("it'\\''s.jpg'")
    assert len(lines) == 4


def test_video_filter_prefixes_interpolation():
    plain = build_video_filter(1920, 1080, 24, interpolate=False)
    smooth = build_video_filter(1920, 1080, 24, interpolate=True)

    assert plain == (
        "scale=1920:1080:force_original_aspect_ratio=decrease,"
        "pad=1920:1080:(ow-iw)/2:(oh-ih)/2"
    )
    assert smooth.startswith("minterpolate=fps=24:mi_mode=mci:mc_mode=aobmc:me_mode=bidir:vsbmc=1,")
    assert smooth.endswith(plain)


def test_max_dimensions_rounds_up_to_even(tmp_path):
    for name, (width, height) in {"a.jpg": (63, 40), "b.jpg": (20, 51)}.items():
        cv2.imwrite(str(tmp_path / name), np.zeros((height, width, 3), dtype=np.uint8))

    assert max_dimensions([tmp_path / "a.jpg", tmp_path / "b.jpg"]) == (64, 52)
    assert max_dimensions([tmp_path / "missing.jpg"]) == (1920, 1080)


def test_encode_sequence_builds_libx264_command(tmp_path, monkeypatch):
    calls = _fake_ffmpeg(monkeypatch)
    output = tmp_path / "videos" / "2025-06-10.mp4"

    FfmpegEncoder().encode_sequence(
        [tmp_path / "a.jpg", tmp_path / "b.jpg"],
        output,
        fps=0,
        quality=1,
        interpolate=True,
        width=640,
        height=480,
    )

    cmd = calls[0]["cmd"]
    assert output.read_bytes() == b"mp4"
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-preset") + 1] == "slow"
    assert cmd[cmd.index("-crf") + 1] == "1"
    assert cmd[cmd.index("-r") + 1] == "1"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
    assert cmd[cmd.index("-vf") + 1].startswith("minterpolate=fps=1:")
    assert "duration 1.000000" in calls[0]["list"]
    assert not list(output.parent.glob(".tmp_*"))


def test_encode_failure_raises_and_leaves_no_output(tmp_path, monkeypatch):
    _fake_ffmpeg(monkeypatch, returncode=1)
    output = tmp_path / "2025-06-10.mp4"

    with pytest.raises(EncodingError) as excinfo:
        FfmpegEncoder().encode_sequence(
            [tmp_path / "a.jpg"],
            output,
            fps=24,
            quality=1,
            interpolate=False,
            width=640,
            height=480,
        )

    assert excinfo.value.returncode == 1
    assert excinfo.value.stderr == "encoder exploded"
    assert not output.exists()
    assert not list(tmp_path.glob(".tmp_*"))


def test_concatenate_uses_stream_copy(tmp_path, monkeypatch):
    calls = _fake_ffmpeg(monkeypatch)
    clips = [tmp_path / "2025-06-10.mp4", tmp_path / "2025-06-11.mp4"]

    FfmpegEncoder().concatenate(clips, tmp_path / "full.mp4")

    cmd = calls[0]["cmd"]
    assert cmd[cmd.index("-c") + 1] == "copy"
    assert calls[0]["list"].splitlines() == [f"file '{clip.resolve()}'" for clip in clips]


def test_missing_ffmpeg_raises_encoding_error(tmp_path, monkeypatch):
    monkeypatch.setattr(encoder_module.shutil, "which", lambda name: None)

    with pytest.raises(EncodingError):
        FfmpegEncoder().concatenate([tmp_path / "a.mp4"], tmp_path / "full.mp4")


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
def test_encode_sequence_with_real_ffmpeg(tmp_path):
    frames = []
    for index in range(3):
        path = tmp_path / f"2025-06-1{index}_1200.jpg"
        cv2.imwrite(str(path), np.full((48, 64, 3), index * 60, dtype=np.uint8))
        frames.append(path)
    output = tmp_path / "out.mp4"

    FfmpegEncoder().encode_sequence(
        frames,
        output,
        fps=4,
        quality=23,
        interpolate=False,
        width=64,
        height=48,
    )

    assert FfmpegEncoder().video_dimensions(output) == (64, 48)


def test_video_dimensions_of_unreadable_file_is_none(tmp_path):
    bogus = tmp_path / "2025-06-10.mp4"
    bogus.write_bytes(b"not a video")

    assert probe_video_dimensions(bogus) is None
    assert probe_video_dimensions(tmp_path / "missing.mp4") is None
