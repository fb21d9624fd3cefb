"""Data models shared across the lawn lapse capture and assembly pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, time
from pathlib import Path
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

MIN_SHOTS_PER_HOUR = 1
MAX_SHOTS_PER_HOUR = 60


class ConfigurationError(ValueError):
    """Raised when a schedule or location cannot be used for slot generation."""


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a :class:`datetime.time`."""
    match = _HHMM_PATTERN.match(str(value).strip())
    if not match:
        raise ConfigurationError(f"Invalid time '{value}'. Use HH:MM (24-hour)")
    return time(int(match.group(1)), int(match.group(2)))


def _check_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone '{name}'") from exc


def _check_shots_per_hour(value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError("shotsPerHour must be an integer")
    if not MIN_SHOTS_PER_HOUR <= value <= MAX_SHOTS_PER_HOUR:
        raise ConfigurationError(
            f"shotsPerHour must be between {MIN_SHOTS_PER_HOUR} and {MAX_SHOTS_PER_HOUR}"
        )


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive daily window for interval captures."""

    start: str = "00:00"
    end: str = "23:59"

    def validate(self) -> None:
        start = parse_hhmm(self.start)
        end = parse_hhmm(self.end)
        if end < start:
            raise ConfigurationError(
                f"Window end {self.end} must not be earlier than start {self.start}"
            )


@dataclass(frozen=True)
class IntervalSpec:
    """Interior interval used between sunrise and sunset captures."""

    shots_per_hour: int

    def validate(self) -> None:
        _check_shots_per_hour(self.shots_per_hour)


@dataclass(frozen=True)
class FixedTimeSchedule:
    """Capture once at each listed wall-clock time."""

    times: Tuple[str, ...]
    timezone: str = "UTC"

    mode = "fixed-time"

    def validate(self) -> None:
        if not self.times:
            raise ConfigurationError("Fixed time mode requires at least one time")
        for value in self.times:
            parse_hhmm(value)
        _check_timezone(self.timezone)


@dataclass(frozen=True)
class IntervalSchedule:
    """Capture ``shots_per_hour`` times per hour inside a daily window."""

    shots_per_hour: int
    window: TimeWindow = field(default_factory=TimeWindow)
    timezone: str = "UTC"

    mode = "interval"

    def validate(self) -> None:
        _check_shots_per_hour(self.shots_per_hour)
        self.window.validate()
        _check_timezone(self.timezone)


@dataclass(frozen=True)
class SunriseSunsetSchedule:
    """Capture relative to local sunrise and sunset.

    Offsets are signed minutes. When ``interval`` is set, additional shots are
    taken between the offset sunrise and the offset sunset.
    """

    capture_sunrise: bool = True
    capture_sunset: bool = True
    sunrise_offset_minutes: int = 0
    sunset_offset_minutes: int = 0
    interval: Optional[IntervalSpec] = None
    timezone: str = "UTC"

    mode = "sunrise-sunset"

    def validate(self) -> None:
        if self.interval is not None:
            self.interval.validate()
        _check_timezone(self.timezone)


@dataclass(frozen=True)
class Location:
    """Geographic position used for solar computations."""

    lat: float
    lon: float
    name: Optional[str] = None

    def validate(self) -> None:
        if self.lat is None or self.lon is None:
            raise ConfigurationError("Location requires both latitude and longitude")
        if not -90 <= self.lat <= 90:
            raise ConfigurationError(f"Latitude {self.lat} must be between -90 and 90")
        if not -180 <= self.lon <= 180:
            raise ConfigurationError(f"Longitude {self.lon} must be between -180 and 180")


@dataclass(frozen=True)
class Frame:
    """A captured still stored as ``YYYY-MM-DD_HHMM.jpg``."""

    date: date
    time_of_day: str
    path: Path
    mtime: float

    @property
    def date_str(self) -> str:
        return self.date.isoformat()


@dataclass(frozen=True)
class DailyVideoPlan:
    """Frames of one well-covered day, ordered by time of day."""

    date: date
    frames: Tuple[Frame, ...]


@dataclass(frozen=True)
class TimeGroup:
    """Frames sharing a time of day across sparsely-covered days, ordered by date."""

    time_of_day: str
    frames: Tuple[Frame, ...]

    @property
    def first_date(self) -> date:
        return self.frames[0].date

    @property
    def last_date(self) -> date:
        return self.frames[-1].date


@dataclass(frozen=True)
class DistributionResult:
    daily_videos: Tuple[DailyVideoPlan, ...]
    time_groups: Tuple[TimeGroup, ...]


@dataclass
class RenderedVideo:
    """Summary of a built (or reused) video artifact."""

    output_path: Path
    frame_count: int
    width: int
    height: int
    cached: bool = False


__all__ = [
    "ConfigurationError",
    "DailyVideoPlan",
    "DistributionResult",
    "FixedTimeSchedule",
    "Frame",
    "IntervalSchedule",
    "IntervalSpec",
    "Location",
    "MAX_SHOTS_PER_HOUR",
    "MIN_SHOTS_PER_HOUR",
    "RenderedVideo",
    "SunriseSunsetSchedule",
    "TimeGroup",
    "TimeWindow",
    "parse_hhmm",
]
