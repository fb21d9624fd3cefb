"""ffmpeg invocation and frame probing for video assembly."""

from __future__ import annotations

import logging
import shutil
import subprocess
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)

FALLBACK_DIMENSIONS = (1920, 1080)


class EncodingError(RuntimeError):
    """Raised when ffmpeg is unavailable or exits unsuccessfully."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def _escape_for_concat(path: Path) -> str:
    """Escape single quotes for FFmpeg concat demuxer entries."""
    return str(path).replace("'", "'\\''")


def _even(value: int) -> int:
    return value + (value % 2)


def _temp_sibling(path: Path) -> Path:
    return path.with_name(f".tmp_{uuid.uuid4().hex}_{path.name}")


def safe_fps(fps: int) -> int:
    return fps if fps > 0 else 1


def build_video_filter(width: int, height: int, fps: int, interpolate: bool) -> str:
    """Scale to fit, pad to centre, optionally motion-interpolate first."""
    video_filter = (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )
    if interpolate:
        video_filter = (
            f"minterpolate=fps={fps}:mi_mode=mci:mc_mode=aobmc:me_mode=bidir:vsbmc=1,"
            f"{video_filter}"
        )
    return video_filter


def write_frame_list(frames: Sequence[Path], list_path: Path, fps: int) -> Path:
    """Write an ffconcat list holding every frame for ``1/fps`` seconds."""
    frame_duration = 1 / safe_fps(fps)
    lines = ["ffconcat version 1.0"]
    for index, frame in enumerate(frames):
        lines.append(f"file '{_escape_for_concat(Path(frame).resolve())}'")
        if index != len(frames) - 1:
            lines.append(f"duration {frame_duration:.6f}")
    list_path.parent.mkdir(parents=True, exist_ok=True)
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


def probe_dimensions(image_path: Path) -> Optional[Tuple[int, int]]:
    """Return ``(width, height)`` of an image, or ``None`` if it can't be read."""
    try:
        raw = np.fromfile(str(image_path), dtype=np.uint8)
    except OSError:
        return None
    image = cv2.imdecode(raw, cv2.IMREAD_UNCHANGED) if raw.size else None
    if image is None:
        return None
    height, width = image.shape[:2]
    if width <= 0 or height <= 0:
        return None
    return width, height


def max_dimensions(frames: Sequence[Path]) -> Tuple[int, int]:
    """Largest width and height across ``frames``, rounded up to even numbers."""
    widths: List[int] = []
    heights: List[int] = []
    for frame in frames:
        dimensions = probe_dimensions(frame)
        if dimensions is None:
            LOGGER.debug("Could not read dimensions of %s", frame)
            continue
        widths.append(dimensions[0])
        heights.append(dimensions[1])

    if not widths:
        return FALLBACK_DIMENSIONS
    return _even(max(widths)), _even(max(heights))


def probe_video_dimensions(video_path: Path) -> Optional[Tuple[int, int]]:
    """Return ``(width, height)`` of a video's stream, or ``None`` if unreadable."""
    capture = cv2.VideoCapture(str(video_path))
    try:
        if not capture.isOpened():
            return None
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
    finally:
        capture.release()
    if width <= 0 or height <= 0:
        return None
    return width, height


class FfmpegEncoder:
    """Encode frame sequences and concatenate clips with the ffmpeg binary."""

    def __init__(self, binary: str = "ffmpeg", logger: Optional[logging.Logger] = None) -> None:
        self.binary = binary
        self.logger = logger or LOGGER

    def video_dimensions(self, video_path: Path) -> Optional[Tuple[int, int]]:
        return probe_video_dimensions(video_path)

    def _ensure_available(self) -> None:
        if shutil.which(self.binary) is None:
            raise EncodingError("ffmpeg not found on PATH. Install ffmpeg with libx264.")

    def _run(self, cmd: List[str], temp_output: Path, output_path: Path) -> None:
        try:
            subprocess.run(cmd, capture_output=True, check=True)
        except subprocess.CalledProcessError as exc:
            temp_output.unlink(missing_ok=True)
            stderr = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else ""
            raise EncodingError(
                f"ffmpeg exited with code {exc.returncode} while writing {output_path.name}",
                returncode=exc.returncode,
                stderr=stderr,
            ) from exc
        temp_output.replace(output_path)

    def encode_sequence(
        self,
        frames: Sequence[Path],
        output_path: Path,
        *,
        fps: int,
        quality: int,
        interpolate: bool,
        width: int,
        height: int,
    ) -> Path:
        """Encode ``frames`` in order into an H.264 MP4 at ``output_path``."""
        if not frames:
            raise EncodingError(f"No frames to encode for {output_path.name}")
        self._ensure_available()

        rate = safe_fps(fps)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        list_path = _temp_sibling(output_path.with_suffix(".txt"))
        temp_output = _temp_sibling(output_path)
        write_frame_list(frames, list_path, rate)

        cmd = [
            self.binary,
            "-loglevel",
            "error",
            "-y",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(list_path),
            "-c:v",
            "libx264",
            "-preset",
            "slow",
            "-crf",
            str(quality),
            "-vf",
            build_video_filter(width, height, rate, interpolate),
            "-r",
            str(rate),
            "-pix_fmt",
            "yuv420p",
            "-movflags",
            "+faststart",
            str(temp_output),
        ]

        try:
            self._run(cmd, temp_output, output_path)
        finally:
            list_path.unlink(missing_ok=True)
        return output_path

    def concatenate(self, inputs: Sequence[Path], output_path: Path) -> Path:
        """Join clips with the concat demuxer without re-encoding."""
        if not inputs:
            raise EncodingError(f"No clips to concatenate for {output_path.name}")
        self._ensure_available()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        list_path = _temp_sibling(output_path.with_suffix(".txt"))
        temp_output = _temp_sibling(output_path)
        list_path.write_text(
            "".join(f"file '{_escape_for_concat(Path(clip).resolve())}'\n" for clip in inputs),
            encoding="utf-8",
        )

        cmd = [
            self.binary,
            "-loglevel",
            "error",
            "-y",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(list_path),
            "-c",
            "copy",
            "-movflags",
            "+faststart",
            str(temp_output),
        ]

        try:
            self._run(cmd, temp_output, output_path)
        finally:
            list_path.unlink(missing_ok=True)
        return output_path


__all__ = [
    "EncodingError",
    "FALLBACK_DIMENSIONS",
    "FfmpegEncoder",
    "build_video_filter",
    "max_dimensions",
    "probe_dimensions",
    "probe_video_dimensions",
    "write_frame_list",
]
