"""Sunrise and sunset lookups backed by astral."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from astral import Observer
from astral.sun import sunrise, sunset


@dataclass(frozen=True)
class SolarTimes:
    sunrise: datetime
    sunset: datetime


def sun_times(day: date, lat: float, lon: float, timezone: str = "UTC") -> Optional[SolarTimes]:
    """Return local sunrise and sunset for ``day``.

    ``None`` is returned when the sun does not cross the horizon on that day
    (polar day or polar night).
    """
    tz = ZoneInfo(timezone)
    observer = Observer(latitude=lat, longitude=lon)
    try:
        rise = sunrise(observer, date=day, tzinfo=tz)
        fall = sunset(observer, date=day, tzinfo=tz)
    except ValueError:
        return None
    return SolarTimes(sunrise=rise, sunset=fall)


__all__ = ["SolarTimes", "sun_times"]
