"""Assemble stored frames into daily, per-time-of-day and full timelapse videos."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from lawn_lapse.config import VideoSettings
from lawn_lapse.encoder import EncodingError, FfmpegEncoder, max_dimensions
from lawn_lapse.models import (
    DailyVideoPlan,
    DistributionResult,
    Frame,
    RenderedVideo,
    TimeGroup,
)

LOGGER = logging.getLogger(__name__)


def daily_video_filename(plan: DailyVideoPlan) -> str:
    return f"{plan.date.isoformat()}.mp4"


def time_group_filename(group: TimeGroup) -> str:
    hours, minutes = group.time_of_day[:2], group.time_of_day[2:]
    return (
        f"timelapse_{hours}h{minutes}_"
        f"{group.first_date.isoformat()}_to_{group.last_date.isoformat()}.mp4"
    )


def full_timelapse_filename(first: str, last: str) -> str:
    return f"full-timelapse_{first}_to_{last}.mp4"


def is_video_current(video_path: Path, frames: Sequence[Frame]) -> bool:
    """A video is current when it is strictly newer than every source frame."""
    if not video_path.exists():
        return False
    video_mtime = video_path.stat().st_mtime
    latest_frame = max((frame.mtime for frame in frames), default=0.0)
    return video_mtime > latest_frame


@dataclass
class AssemblyResult:
    daily_videos: List[RenderedVideo] = field(default_factory=list)
    time_group_videos: List[RenderedVideo] = field(default_factory=list)
    full_timelapse: Optional[Path] = None
    failures: List[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "daily_videos": [str(video.output_path) for video in self.daily_videos],
            "cached_daily_videos": sum(1 for video in self.daily_videos if video.cached),
            "time_group_videos": [str(video.output_path) for video in self.time_group_videos],
            "full_timelapse": str(self.full_timelapse) if self.full_timelapse else None,
            "failures": list(self.failures),
        }


class VideoAssembler:
    """Build video artifacts for one camera."""

    def __init__(
        self,
        video_dir: Path,
        settings: VideoSettings,
        *,
        encoder: Optional[FfmpegEncoder] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.video_dir = Path(video_dir)
        self.settings = settings
        self.encoder = encoder or FfmpegEncoder()
        self.logger = logger or LOGGER

    def _encode(
        self,
        frames: Sequence[Frame],
        output_path: Path,
        label: str,
        size: Optional[Tuple[int, int]] = None,
    ) -> Optional[RenderedVideo]:
        frame_paths = [frame.path for frame in frames]
        width, height = size or max_dimensions(frame_paths)
        self.logger.info(
            "Encoding %s from %s frames at %sx%s (%s fps, crf %s, interpolate=%s)",
            label,
            len(frame_paths),
            width,
            height,
            self.settings.fps,
            self.settings.quality,
            self.settings.interpolate,
        )
        try:
            self.encoder.encode_sequence(
                frame_paths,
                output_path,
                fps=self.settings.fps,
                quality=self.settings.quality,
                interpolate=self.settings.interpolate,
                width=width,
                height=height,
            )
        except EncodingError as exc:
            self.logger.error("Failed to encode %s: %s %s", label, exc, exc.stderr.strip())
            return None
        return RenderedVideo(
            output_path=output_path,
            frame_count=len(frame_paths),
            width=width,
            height=height,
        )

    def _matches_size(self, video_path: Path, size: Optional[Tuple[int, int]]) -> bool:
        if size is None:
            return True
        return self.encoder.video_dimensions(video_path) == tuple(size)

    def build_daily_video(
        self,
        plan: DailyVideoPlan,
        size: Optional[Tuple[int, int]] = None,
    ) -> Optional[RenderedVideo]:
        """Build (or reuse) the video for one day.

        With ``size`` every daily video shares one resolution, and a cached
        video at any other resolution is rebuilt.
        """
        output_path = self.video_dir / daily_video_filename(plan)
        if is_video_current(output_path, plan.frames) and self._matches_size(output_path, size):
            self.logger.info("Daily video for %s is up to date, skipping", plan.date.isoformat())
            return RenderedVideo(
                output_path=output_path,
                frame_count=len(plan.frames),
                width=size[0] if size else 0,
                height=size[1] if size else 0,
                cached=True,
            )
        return self._encode(plan.frames, output_path, f"daily video {plan.date.isoformat()}", size)

    def build_time_based_timelapse(self, group: TimeGroup) -> Optional[RenderedVideo]:
        """Build the cross-day timelapse for one time of day."""
        if not group.frames:
            return None
        output_path = self.video_dir / time_group_filename(group)
        return self._encode(group.frames, output_path, f"{group.time_of_day} timelapse")

    def concatenate_daily_videos(self, videos: Sequence[Tuple[str, RenderedVideo]]) -> Optional[Path]:
        """Stream-copy daily videos into one file, ordered by date.

        ``videos`` pairs each ISO date with its rendered video.
        """
        available = sorted(
            ((day, video) for day, video in videos if video.output_path.exists()),
            key=lambda item: item[0],
        )
        if not available:
            self.logger.info("No daily videos to concatenate")
            return None

        first_day, last_day = available[0][0], available[-1][0]
        output_path = self.video_dir / full_timelapse_filename(first_day, last_day)
        self.logger.info(
            "Concatenating %s daily videos into %s",
            len(available),
            output_path.name,
        )
        try:
            self.encoder.concatenate([video.output_path for _, video in available], output_path)
        except EncodingError as exc:
            self.logger.error("Failed to concatenate daily videos: %s %s", exc, exc.stderr.strip())
            return None
        return output_path

    def assemble(self, distribution: DistributionResult) -> AssemblyResult:
        result = AssemblyResult()
        self.video_dir.mkdir(parents=True, exist_ok=True)

        # Daily videos are joined by stream copy, so they share one resolution.
        daily_size = max_dimensions(
            [frame.path for plan in distribution.daily_videos for frame in plan.frames]
        )
        dated: List[Tuple[str, RenderedVideo]] = []
        for plan in distribution.daily_videos:
            video = self.build_daily_video(plan, daily_size)
            if video is None:
                result.failures.append(daily_video_filename(plan))
                continue
            result.daily_videos.append(video)
            dated.append((plan.date.isoformat(), video))

        if dated:
            result.full_timelapse = self.concatenate_daily_videos(dated)

        for group in distribution.time_groups:
            video = self.build_time_based_timelapse(group)
            if video is None:
                result.failures.append(time_group_filename(group))
                continue
            result.time_group_videos.append(video)

        return result


__all__ = [
    "AssemblyResult",
    "VideoAssembler",
    "daily_video_filename",
    "full_timelapse_filename",
    "is_video_current",
    "time_group_filename",
]
