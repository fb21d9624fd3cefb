"""Capture slot generation and due-capture evaluation.

Slots are timezone-aware datetimes in the schedule's timezone. Everything in
this module is pure: the current time is always injectable through ``now``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from lawn_lapse.models import (
    ConfigurationError,
    FixedTimeSchedule,
    IntervalSchedule,
    Location,
    SunriseSunsetSchedule,
    _check_shots_per_hour,
    _check_timezone,
    parse_hhmm,
)
from lawn_lapse.solar import sun_times

LOGGER = logging.getLogger(__name__)

CAPTURE_TOLERANCE = timedelta(minutes=5)
SECONDS_PER_HOUR = 3600

Schedule = Union[FixedTimeSchedule, IntervalSchedule, SunriseSunsetSchedule]
DayLike = Union[date, datetime]


@dataclass(frozen=True)
class ScheduleValidation:
    is_valid: bool
    errors: Tuple[str, ...]


def _schedule_timezone(schedule: Any) -> ZoneInfo:
    name = getattr(schedule, "timezone", None) or "UTC"
    _check_timezone(name)
    return ZoneInfo(name)


def _local_day(day: DayLike, tz: ZoneInfo) -> date:
    if isinstance(day, datetime):
        if day.tzinfo is None:
            return day.date()
        return day.astimezone(tz).date()
    return day


def _localize(moment: datetime, tz: ZoneInfo) -> datetime:
    """Interpret naive datetimes in ``tz`` and convert aware ones into it."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def _at(day: date, clock: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, clock, tzinfo=tz)


def _exists(slot: datetime, tz: ZoneInfo) -> bool:
    """False for wall times skipped by a DST transition."""
    round_trip = slot.astimezone(timezone.utc).astimezone(tz)
    return round_trip.replace(tzinfo=None) == slot.replace(tzinfo=None)


def _fixed_time_slots(day: date, times, tz: ZoneInfo) -> List[datetime]:
    return sorted(_at(day, parse_hhmm(value), tz) for value in times)


def _interval_offsets(shots_per_hour: int):
    """Yield second offsets ``floor(i * 3600 / shots)`` for i = 0, 1, ..."""
    index = 0
    while True:
        yield (index * SECONDS_PER_HOUR) // shots_per_hour
        index += 1


def _interval_slots(day: date, schedule: IntervalSchedule, tz: ZoneInfo) -> List[datetime]:
    start = _at(day, parse_hhmm(schedule.window.start), tz)
    end = _at(day, parse_hhmm(schedule.window.end), tz)
    slots: List[datetime] = []
    for offset in _interval_offsets(schedule.shots_per_hour):
        slot = start + timedelta(seconds=offset)
        if slot > end:
            break
        if _exists(slot, tz):
            slots.append(slot)
    return slots


def _sunrise_sunset_slots(
    day: date,
    schedule: SunriseSunsetSchedule,
    location: Location,
    tz: ZoneInfo,
) -> List[datetime]:
    solar = sun_times(day, location.lat, location.lon, tz.key)
    if solar is None:
        LOGGER.warning(
            "Could not calculate sunrise/sunset for %s at (%s, %s)",
            day.isoformat(),
            location.lat,
            location.lon,
        )
        return []

    sunrise = solar.sunrise.replace(microsecond=0) + timedelta(
        minutes=schedule.sunrise_offset_minutes
    )
    sunset = solar.sunset.replace(microsecond=0) + timedelta(
        minutes=schedule.sunset_offset_minutes
    )

    if sunset <= sunrise:
        LOGGER.warning(
            "Sunset precedes sunrise on %s in %s; use the location's local timezone",
            day.isoformat(),
            tz.key,
        )

    slots: List[datetime] = []
    if schedule.capture_sunrise:
        slots.append(sunrise)
    if schedule.capture_sunset:
        slots.append(sunset)

    if schedule.interval is not None and schedule.interval.shots_per_hour > 0:
        offsets = _interval_offsets(schedule.interval.shots_per_hour)
        next(offsets)
        for offset in offsets:
            slot = sunrise + timedelta(seconds=offset)
            if slot >= sunset:
                break
            if _exists(slot, tz):
                slots.append(slot)

    return sorted(slots)


def generate_daily_slots(
    day: DayLike,
    schedule: Optional[Schedule],
    location: Optional[Location] = None,
) -> List[datetime]:
    """Return the ascending capture slots for ``day`` under ``schedule``.

    Raises :class:`ConfigurationError` for invalid schedules, and for
    sunrise/sunset schedules evaluated without a usable location.
    An unset or unrecognised schedule yields a single local-noon slot.
    """
    tz = _schedule_timezone(schedule)
    local_day = _local_day(day, tz)

    if isinstance(schedule, FixedTimeSchedule):
        schedule.validate()
        return _fixed_time_slots(local_day, schedule.times, tz)

    if isinstance(schedule, IntervalSchedule):
        schedule.validate()
        return _interval_slots(local_day, schedule, tz)

    if isinstance(schedule, SunriseSunsetSchedule):
        if location is None:
            raise ConfigurationError(
                "Location (lat/lon) required for sunrise/sunset scheduling"
            )
        location.validate()
        schedule.validate()
        return _sunrise_sunset_slots(local_day, schedule, location, tz)

    return [_at(local_day, time(12, 0), tz)]


def _resolve_now(now: Optional[datetime], tz: ZoneInfo) -> datetime:
    if now is None:
        return datetime.now(tz)
    return _localize(now, tz)


def is_capture_due(
    schedule: Optional[Schedule],
    last_capture: Optional[datetime] = None,
    location: Optional[Location] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Return ``True`` when the next pending slot today is within tolerance of now."""
    tz = _schedule_timezone(schedule)
    current = _resolve_now(now, tz)
    previous = _localize(last_capture, tz) if last_capture is not None else None

    for slot in generate_daily_slots(current.date(), schedule, location):
        if slot <= current:
            continue
        if previous is None or slot > previous:
            return abs(slot - current) <= CAPTURE_TOLERANCE
    return False


def get_next_capture_time(
    schedule: Optional[Schedule],
    location: Optional[Location] = None,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Return the next slot after now, looking into tomorrow if today is exhausted."""
    tz = _schedule_timezone(schedule)
    current = _resolve_now(now, tz)

    for slot in generate_daily_slots(current.date(), schedule, location):
        if slot > current:
            return slot

    tomorrow = generate_daily_slots(current.date() + timedelta(days=1), schedule, location)
    return tomorrow[0] if tomorrow else None


def _collect(errors: List[str], check: Callable[[], None]) -> None:
    try:
        check()
    except ConfigurationError as exc:
        errors.append(str(exc))


def validate_schedule(schedule: Optional[Schedule]) -> ScheduleValidation:
    """Validate a schedule without raising, gathering every problem found."""
    errors: List[str] = []

    if schedule is None or not hasattr(schedule, "mode"):
        errors.append("Schedule mode is required")
        return ScheduleValidation(is_valid=False, errors=tuple(errors))

    if isinstance(schedule, FixedTimeSchedule):
        if not schedule.times:
            errors.append("Fixed time mode requires at least one time")
        for value in schedule.times:
            _collect(errors, lambda value=value: parse_hhmm(value))
    elif isinstance(schedule, IntervalSchedule):
        if not schedule.shots_per_hour:
            errors.append("Interval mode requires shotsPerHour configuration")
        else:
            _collect(errors, lambda: _check_shots_per_hour(schedule.shots_per_hour))
        _collect(errors, schedule.window.validate)
    elif isinstance(schedule, SunriseSunsetSchedule):
        if schedule.interval is not None:
            _collect(errors, schedule.interval.validate)

    _collect(errors, lambda: _check_timezone(schedule.timezone))

    return ScheduleValidation(is_valid=not errors, errors=tuple(errors))


def format_slot_time(slot: datetime, timezone: str = "UTC") -> str:
    """Format a slot as a 24-hour ``HH:MM`` string in ``timezone``."""
    return _localize(slot, ZoneInfo(timezone)).strftime("%H:%M")


def get_slots_for_date_range(
    start: datetime,
    end: datetime,
    schedule: Optional[Schedule],
    location: Optional[Location] = None,
) -> List[datetime]:
    """Return every slot between ``start`` and ``end`` inclusive."""
    tz = _schedule_timezone(schedule)
    start_local = _localize(start, tz)
    end_local = _localize(end, tz)

    slots: List[datetime] = []
    current = start_local.date()
    while current <= end_local.date():
        slots.extend(generate_daily_slots(current, schedule, location))
        current += timedelta(days=1)

    return [slot for slot in slots if start_local <= slot <= end_local]


__all__ = [
    "CAPTURE_TOLERANCE",
    "Schedule",
    "ScheduleValidation",
    "format_slot_time",
    "generate_daily_slots",
    "get_next_capture_time",
    "get_slots_for_date_range",
    "is_capture_due",
    "validate_schedule",
]
