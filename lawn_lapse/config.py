"""Configuration dataclasses and loading helpers for lawn lapse."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from lawn_lapse.models import (
    FixedTimeSchedule,
    IntervalSchedule,
    IntervalSpec,
    Location,
    SunriseSunsetSchedule,
    TimeWindow,
)

CONFIG_FILENAME = "lawn.config.json"
CONFIG_DIR_ENV = "LAWN_LAPSE_CONFIG_DIR"
DEFAULT_SNAPSHOT_TIME = "12:00"


def get_base_dir(env: Mapping[str, str] | None = None) -> Path:
    """Return the directory holding configuration, frames and logs."""
    source_env = os.environ if env is None else env
    configured = source_env.get(CONFIG_DIR_ENV)
    if configured:
        return Path(configured).expanduser().resolve()
    return Path.home() / "lawn-lapse"


def get_config_path(env: Mapping[str, str] | None = None) -> Path:
    return get_base_dir(env) / CONFIG_FILENAME


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_non_negative_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_optional_positive_int(value: Any) -> Optional[int]:
    """Parse a positive integer, treating missing or invalid input as unset."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_float(value: Any) -> Optional[float]:
    """Parse a floating point number, returning ``None`` when absent or invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class ArchiveSettings:
    """Connection details for the UniFi Protect controller."""

    host: str = "192.168.1.1"
    username: str = "admin"
    password: str = ""
    verify_ssl: bool = False
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class VideoSettings:
    fps: int = 24
    quality: int = 1
    interpolate: bool = True


@dataclass(frozen=True)
class HistorySettings:
    """Limits for walking back through the archive."""

    max_days: Optional[int] = None
    stop_after_consecutive_no_data: Optional[int] = 7


@dataclass(frozen=True)
class AutomationSettings:
    """Timings for the long-running scheduler."""

    poll_interval_minutes: int = 15
    daily_run_time: str = "14:00"
    capture_settle_seconds: int = 60


@dataclass(frozen=True)
class CameraConfig:
    id: str
    name: str
    snapshot_dir: Path
    timelapse_dir: Path
    video: VideoSettings = field(default_factory=VideoSettings)

    @property
    def label(self) -> str:
        return self.name or self.id or "camera"


@dataclass(frozen=True)
class Config:
    """Root configuration object, passed explicitly to every component."""

    schedule: Any
    location: Optional[Location]
    archive: ArchiveSettings
    cameras: Tuple[CameraConfig, ...]
    video_defaults: VideoSettings = field(default_factory=VideoSettings)
    history: HistorySettings = field(default_factory=HistorySettings)
    automation: AutomationSettings = field(default_factory=AutomationSettings)
    base_dir: Path = field(default_factory=lambda: Path.home() / "lawn-lapse")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def parse_schedule(raw: Mapping[str, Any]) -> Any:
    """Build a schedule variant from the JSON ``schedule`` block.

    Values are carried through unchecked; the schedule's ``validate`` reports
    problems when slots are generated.
    """
    raw = _mapping(raw)
    timezone = str(raw.get("timezone") or "UTC")
    mode = raw.get("mode") or "fixed-time"
    interval = _mapping(raw.get("interval"))

    if mode == "interval":
        window = _mapping(raw.get("window"))
        return IntervalSchedule(
            shots_per_hour=_parse_int(interval.get("shotsPerHour"), 1),
            window=TimeWindow(
                start=str(window.get("startHour") or "00:00"),
                end=str(window.get("endHour") or "23:59"),
            ),
            timezone=timezone,
        )

    if mode == "sunrise-sunset":
        shots = _parse_int(interval.get("shotsPerHour"), 0)
        return SunriseSunsetSchedule(
            capture_sunrise=_parse_bool(raw.get("captureSunrise"), True),
            capture_sunset=_parse_bool(raw.get("captureSunset"), True),
            sunrise_offset_minutes=_parse_int(raw.get("sunriseOffset"), 0),
            sunset_offset_minutes=_parse_int(raw.get("sunsetOffset"), 0),
            interval=IntervalSpec(shots_per_hour=shots) if shots > 0 else None,
            timezone=timezone,
        )

    fixed_times = raw.get("fixedTimes")
    if not isinstance(fixed_times, (list, tuple)) or not fixed_times:
        fixed_times = [DEFAULT_SNAPSHOT_TIME]
    return FixedTimeSchedule(
        times=tuple(str(value) for value in fixed_times),
        timezone=timezone,
    )


def parse_location(raw: Mapping[str, Any]) -> Optional[Location]:
    raw = _mapping(raw)
    lat = _parse_float(raw.get("lat"))
    lon = _parse_float(raw.get("lon"))
    if lat is None or lon is None:
        return None
    name = raw.get("name")
    return Location(lat=lat, lon=lon, name=str(name) if name else None)


def _parse_archive_settings(raw: Mapping[str, Any]) -> ArchiveSettings:
    raw = _mapping(raw)
    default = ArchiveSettings()
    timeout = _parse_float(raw.get("timeoutSeconds"))
    return ArchiveSettings(
        host=str(raw.get("host") or default.host),
        username=str(raw.get("username") or default.username),
        password=str(raw.get("password") or default.password),
        verify_ssl=_parse_bool(raw.get("verifySsl"), default.verify_ssl),
        timeout_seconds=timeout if timeout and timeout > 0 else default.timeout_seconds,
    )


def _parse_video_settings(raw: Mapping[str, Any], fallback: VideoSettings) -> VideoSettings:
    """Parse video settings, falling back field by field to ``fallback``."""
    raw = _mapping(raw)
    return VideoSettings(
        fps=_parse_positive_int(raw.get("fps"), fallback.fps),
        quality=_parse_non_negative_int(raw.get("quality"), fallback.quality),
        interpolate=_parse_bool(raw.get("interpolate"), fallback.interpolate),
    )


def _parse_history_settings(raw: Mapping[str, Any]) -> HistorySettings:
    raw = _mapping(raw)
    default = HistorySettings()
    no_data = (
        _parse_optional_positive_int(raw.get("stopAfterConsecutiveNoData"))
        if "stopAfterConsecutiveNoData" in raw
        else default.stop_after_consecutive_no_data
    )
    return HistorySettings(
        max_days=_parse_optional_positive_int(raw.get("maxDays")),
        stop_after_consecutive_no_data=no_data,
    )


def _parse_automation_settings(raw: Mapping[str, Any]) -> AutomationSettings:
    raw = _mapping(raw)
    default = AutomationSettings()
    return AutomationSettings(
        poll_interval_minutes=_parse_positive_int(
            raw.get("pollIntervalMinutes"), default.poll_interval_minutes
        ),
        daily_run_time=str(raw.get("dailyRunTime") or default.daily_run_time),
        capture_settle_seconds=_parse_non_negative_int(
            raw.get("captureSettleSeconds"), default.capture_settle_seconds
        ),
    )


def resolve_camera_dirs(
    base_dir: Path,
    snapshot_dir: Any = None,
    timelapse_dir: Any = None,
) -> Tuple[Path, Path]:
    """Apply directory defaults; videos never share the snapshot directory."""
    snapshots = Path(snapshot_dir).expanduser() if snapshot_dir else base_dir / "snapshots"
    candidate = Path(timelapse_dir).expanduser() if timelapse_dir else None
    if candidate is None or candidate == snapshots:
        candidate = snapshots.parent / "videos"
    return snapshots, candidate


def _parse_cameras(raw_list: Any, base_dir: Path, video_defaults: VideoSettings) -> Tuple[CameraConfig, ...]:
    cameras: list[CameraConfig] = []
    for entry in raw_list if isinstance(raw_list, (list, tuple)) else []:
        if not isinstance(entry, Mapping):
            continue
        snapshot_dir, timelapse_dir = resolve_camera_dirs(
            base_dir,
            entry.get("snapshotDir"),
            entry.get("timelapseDir"),
        )
        cameras.append(
            CameraConfig(
                id=str(entry.get("id") or ""),
                name=str(entry.get("name") or ""),
                snapshot_dir=snapshot_dir,
                timelapse_dir=timelapse_dir,
                video=_parse_video_settings(entry.get("video"), video_defaults),
            )
        )
    return tuple(cameras)


def parse_config(data: Mapping[str, Any], base_dir: Path) -> Config:
    """Build a :class:`Config` from the parsed ``lawn.config.json`` contents."""
    data = _mapping(data)
    video_defaults = _parse_video_settings(data.get("videoDefaults"), VideoSettings())
    return Config(
        schedule=parse_schedule(data.get("schedule")),
        location=parse_location(data.get("location")),
        archive=_parse_archive_settings(data.get("unifi")),
        cameras=_parse_cameras(data.get("cameras"), base_dir, video_defaults),
        video_defaults=video_defaults,
        history=_parse_history_settings(data.get("history")),
        automation=_parse_automation_settings(data.get("automation")),
        base_dir=base_dir,
    )


def _load_env_config(env: Mapping[str, str], base_dir: Path) -> Config:
    """Fallback configuration derived from environment variables."""
    video_defaults = VideoSettings()
    cameras: Tuple[CameraConfig, ...] = ()
    if env.get("CAMERA_ID") or env.get("CAMERA_NAME") or env.get("OUTPUT_DIR"):
        snapshot_dir, timelapse_dir = resolve_camera_dirs(base_dir, env.get("OUTPUT_DIR"))
        cameras = (
            CameraConfig(
                id=env.get("CAMERA_ID", ""),
                name=env.get("CAMERA_NAME", ""),
                snapshot_dir=snapshot_dir,
                timelapse_dir=timelapse_dir,
                video=_parse_video_settings(
                    {"fps": env.get("VIDEO_FPS"), "quality": env.get("VIDEO_QUALITY")},
                    video_defaults,
                ),
            ),
        )

    schedule = FixedTimeSchedule(
        times=(env.get("SNAPSHOT_TIME") or DEFAULT_SNAPSHOT_TIME,),
        timezone=env.get("SCHEDULE_TIMEZONE") or "UTC",
    )

    return Config(
        schedule=schedule,
        location=None,
        archive=_parse_archive_settings(
            {
                "host": env.get("UNIFI_HOST"),
                "username": env.get("UNIFI_USERNAME"),
                "password": env.get("UNIFI_PASSWORD"),
            }
        ),
        cameras=cameras,
        video_defaults=video_defaults,
        base_dir=base_dir,
    )


def load_config(
    config_path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from JSON file or environment defaults."""
    source_env = os.environ if env is None else env
    path = Path(config_path) if config_path is not None else get_config_path(source_env)
    base_dir = path.parent if config_path is not None else get_base_dir(source_env)

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return parse_config(data, base_dir)

    return _load_env_config(source_env, base_dir)


__all__ = [
    "ArchiveSettings",
    "AutomationSettings",
    "CONFIG_FILENAME",
    "CameraConfig",
    "Config",
    "HistorySettings",
    "VideoSettings",
    "get_base_dir",
    "get_config_path",
    "load_config",
    "parse_config",
    "parse_location",
    "parse_schedule",
    "resolve_camera_dirs",
    "_parse_bool",
    "_parse_positive_int",
]
