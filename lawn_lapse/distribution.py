"""Split stored frames into daily videos and cross-day time groups."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Union

from lawn_lapse.frames import FrameStore
from lawn_lapse.models import DailyVideoPlan, DistributionResult, Frame, TimeGroup

# Days with at least this many frames get their own video.
DAILY_VIDEO_MIN_FRAMES = 3


def analyze_distribution(source: Union[FrameStore, Iterable[Frame]]) -> DistributionResult:
    """Partition frames by day and pool sparsely covered days by time of day."""
    frames = source.list_all() if isinstance(source, FrameStore) else list(source)

    by_date: Dict[date, List[Frame]] = defaultdict(list)
    for frame in frames:
        by_date[frame.date].append(frame)

    daily_videos: List[DailyVideoPlan] = []
    pooled: Dict[str, List[Frame]] = defaultdict(list)

    for day in sorted(by_date):
        day_frames = by_date[day]
        if len(day_frames) >= DAILY_VIDEO_MIN_FRAMES:
            ordered = sorted(day_frames, key=lambda frame: frame.time_of_day)
            daily_videos.append(DailyVideoPlan(date=day, frames=tuple(ordered)))
        else:
            for frame in day_frames:
                pooled[frame.time_of_day].append(frame)

    time_groups = [
        TimeGroup(
            time_of_day=time_of_day,
            frames=tuple(sorted(pooled[time_of_day], key=lambda frame: frame.date)),
        )
        for time_of_day in sorted(pooled)
    ]

    return DistributionResult(
        daily_videos=tuple(daily_videos),
        time_groups=tuple(time_groups),
    )


__all__ = ["DAILY_VIDEO_MIN_FRAMES", "analyze_distribution"]
