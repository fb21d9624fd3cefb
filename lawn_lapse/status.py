"""Frame and video status reporting for a camera."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional

from lawn_lapse.frames import FrameStore


@dataclass(frozen=True)
class DateGap:
    time_of_day: str
    after: date
    before: date

    @property
    def missing_days(self) -> int:
        return (self.before - self.after).days - 1


@dataclass(frozen=True)
class VideoInfo:
    path: Path
    size_bytes: int
    modified: datetime


@dataclass
class StatusReport:
    frame_count: int = 0
    first_date: Optional[date] = None
    last_date: Optional[date] = None
    frames_per_time: Dict[str, int] = field(default_factory=dict)
    gaps: List[DateGap] = field(default_factory=list)
    videos: List[VideoInfo] = field(default_factory=list)


def find_gaps(dates_by_time: Dict[str, List[date]]) -> List[DateGap]:
    """Report runs of missing days within each time-of-day sequence."""
    gaps: List[DateGap] = []
    for time_of_day in sorted(dates_by_time):
        dates = sorted(set(dates_by_time[time_of_day]))
        for previous, current in zip(dates, dates[1:]):
            if (current - previous).days > 1:
                gaps.append(DateGap(time_of_day=time_of_day, after=previous, before=current))
    return gaps


def list_videos(video_dir: Path) -> List[VideoInfo]:
    """Return MP4 artifacts in ``video_dir``, newest first."""
    if not video_dir.exists():
        return []
    videos: List[VideoInfo] = []
    for path in video_dir.glob("*.mp4"):
        if path.name.startswith(".tmp_"):
            continue
        stat = path.stat()
        videos.append(
            VideoInfo(
                path=path,
                size_bytes=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime),
            )
        )
    videos.sort(key=lambda video: video.modified, reverse=True)
    return videos


def build_status_report(frame_store: FrameStore, video_dir: Path) -> StatusReport:
    frames = frame_store.list_all()
    report = StatusReport(frame_count=len(frames), videos=list_videos(video_dir))
    if not frames:
        return report

    dates_by_time: Dict[str, List[date]] = defaultdict(list)
    for frame in frames:
        dates_by_time[frame.time_of_day].append(frame.date)

    report.first_date = frames[0].date
    report.last_date = frames[-1].date
    report.frames_per_time = {key: len(value) for key, value in sorted(dates_by_time.items())}
    report.gaps = find_gaps(dates_by_time)
    return report


def format_status_report(camera_label: str, report: StatusReport, *, max_items: int = 3) -> str:
    """Render a human-readable status report."""
    lines: List[str] = []
    lines.append(f"Lawn Lapse Status: {camera_label}")
    lines.append("-" * (19 + len(camera_label)))

    if report.frame_count:
        lines.append(f"Frames: {report.frame_count:,}")
        lines.append(f"Range: {report.first_date} to {report.last_date}")
        for time_of_day, count in report.frames_per_time.items():
            lines.append(f"  {time_of_day[:2]}:{time_of_day[2:]} - {count:,} frames")
        if report.gaps:
            lines.append(f"Gaps found: {len(report.gaps)}")
            for gap in report.gaps[:max_items]:
                lines.append(
                    f"  - {gap.time_of_day}: {gap.after} to {gap.before} "
                    f"({gap.missing_days} days missing)"
                )
            if len(report.gaps) > max_items:
                lines.append(f"  ... and {len(report.gaps) - max_items} more")
        else:
            lines.append("No gaps in sequence")
    else:
        lines.append("Frames: none found")

    lines.append("")
    if report.videos:
        lines.append(f"Videos: {len(report.videos)}")
        for video in report.videos[:max_items]:
            size_mb = video.size_bytes / 1024 / 1024
            lines.append(
                f"  - {video.path.name} ({size_mb:.1f}MB, {video.modified.date().isoformat()})"
            )
    else:
        lines.append("Videos: none found")

    return "\n".join(lines)


__all__ = [
    "DateGap",
    "StatusReport",
    "VideoInfo",
    "build_status_report",
    "find_gaps",
    "format_status_report",
    "list_videos",
]
